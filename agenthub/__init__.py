"""AgentHub OAuth credential lifecycle and MCP tool resolution service."""

__version__ = "0.1.0"
