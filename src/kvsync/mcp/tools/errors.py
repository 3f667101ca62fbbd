"""Error response builders for MCP tool handlers.

Structured errors carry a corrective action so an agent can recover
without human intervention.
"""

import mcp.types as types

from ...errors import (
    AuthError,
    LocalStoreError,
    NetworkError,
    RemoteError,
    ResolutionError,
    SyncError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (offline, auth_error, remote_error,
            resolution_error, local_store_error, validation_error,
            server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("offline", "offline", "Retry kv_sync later.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Map a ``SyncError`` subclass onto a structured error response."""
    match error:
        case NetworkError():
            return build_error_response(
                "offline",
                str(error),
                "Writes are kept locally and queued. Call kv_status to "
                "check connectivity, then kv_sync once online.",
            )
        case AuthError():
            return build_error_response(
                "auth_error",
                str(error),
                "Check KVSYNC_API_KEY and KVSYNC_USER_ID, then restart the server.",
            )
        case ResolutionError():
            return build_error_response(
                "resolution_error",
                str(error),
                "Nothing was left diverged. Run kv_sync to refresh the "
                "conflict list, then retry kv_resolve.",
            )
        case RemoteError():
            status = (
                f" (HTTP {error.status_code})" if error.status_code else ""
            )
            return build_error_response(
                "remote_error",
                f"{error}{status}",
                "Retry later; pending writes stay queued.",
            )
        case LocalStoreError():
            return build_error_response(
                "local_store_error",
                str(error),
                "Check that the data directory is writable (KVSYNC_DATA_DIR).",
            )
        case _:
            return build_error_response(
                "server_error", str(error), "Retry later."
            )
