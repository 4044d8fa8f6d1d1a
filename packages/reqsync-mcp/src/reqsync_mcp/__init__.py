from .server import main, mcp

__all__ = ["main", "mcp"]
