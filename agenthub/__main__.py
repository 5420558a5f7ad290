"""Entry point for running the AgentHub server."""

import uvicorn

from agenthub.config import get_config
from agenthub.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    """Configure logging, then serve the application factory with uvicorn."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info("Starting AgentHub", host=config.server_host, port=config.server_port)

    uvicorn.run(
        "agenthub.server:create_app",
        factory=True,
        host=config.server_host,
        port=config.server_port,
        log_config=None,  # Use our custom structlog configuration
        access_log=False,
    )


if __name__ == "__main__":
    main()
