"""kvsync: offline-first key-value sync engine with an MCP server surface."""

__version__ = "0.3.0"
