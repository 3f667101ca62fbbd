"""MCP tool handlers for the kvsync server.

Tools wrap ``SyncService`` with async handlers and structured error
responses.
"""

from .errors import build_error_response, translate_sync_error
from .kv import KV_SPECS, KV_TOOLS
from .registry import ToolRegistry, ToolSpec

ALL_SPECS: list[ToolSpec] = list(KV_SPECS)

__all__ = [
    "ALL_SPECS",
    "KV_SPECS",
    "KV_TOOLS",
    "ToolRegistry",
    "ToolSpec",
    "build_error_response",
    "translate_sync_error",
]
