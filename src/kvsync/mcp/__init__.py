"""MCP stdio server exposing the key-value sync service."""
