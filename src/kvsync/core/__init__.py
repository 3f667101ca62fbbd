"""Remote store client and async helpers shared by the engine and MCP server."""

from .async_utils import run_sync
from .client import RemoteStoreClient

__all__ = ["RemoteStoreClient", "run_sync"]
