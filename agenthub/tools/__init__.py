from agenthub.tools.cache import ToolCache
from agenthub.tools.resolver import ToolResolver

__all__ = ["ToolCache", "ToolResolver"]
