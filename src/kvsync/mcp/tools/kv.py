"""MCP tool handlers for the key-value store and its sync engine.

Defines six tools:

- ``kv_get`` -- read a key from the local store (or the remote store).
- ``kv_put`` -- write a key locally and push it, queueing when offline.
- ``kv_delete`` -- tombstone a key locally and push the deletion.
- ``kv_sync`` -- run one reconciliation pass.
- ``kv_resolve`` -- resolve a conflicting key with local/remote/merge.
- ``kv_status`` -- connectivity, pending queue and last sync report.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...sync.models import ResolutionStrategy
from ...sync.reporter import format_sync_report, report_to_json
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...sync.service import SyncService

logger = logging.getLogger(__name__)

_KEY_PROPERTY = {
    "type": "string",
    "description": "Record key, e.g. copywriting_ai_business_context",
}


def _require_key(args: dict) -> str:
    key = args.get("key")
    if not isinstance(key, str) or not key.strip():
        raise ValueError("'key' must be a non-empty string")
    return key


def _text(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_kv_get(
    service: SyncService, args: dict
) -> types.CallToolResult:
    key = _require_key(args)
    source = args.get("source", "local")
    if source == "local":
        value = await service.get(key)
    elif source == "remote":
        value = await service.fetch_remote(key)
    else:
        raise ValueError(
            f"Invalid source '{source}': must be 'local' or 'remote'"
        )

    if value is None:
        text = f"{key}: not found ({source})"
    else:
        text = json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return _text(text, {"key": key, "source": source, "value": value})


async def _handle_kv_put(
    service: SyncService, args: dict
) -> types.CallToolResult:
    key = _require_key(args)
    if "value" not in args:
        raise ValueError("'value' is required")
    pushed = await service.put(key, args["value"])
    text = f"Saved {key} " + (
        "and pushed to remote" if pushed else "locally; queued for sync"
    )
    return _text(text, {"key": key, "pushed": pushed})


async def _handle_kv_delete(
    service: SyncService, args: dict
) -> types.CallToolResult:
    key = _require_key(args)
    pushed = await service.delete(key)
    text = f"Deleted {key} " + (
        "locally and remotely" if pushed else "locally; deletion queued for sync"
    )
    return _text(text, {"key": key, "pushed": pushed})


async def _handle_kv_sync(
    service: SyncService, args: dict
) -> types.CallToolResult:
    report = await service.sync()
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_sync_report(report))
        ],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


async def _handle_kv_resolve(
    service: SyncService, args: dict
) -> types.CallToolResult:
    key = _require_key(args)
    strategy = args.get("strategy")
    if strategy not in {s.value for s in ResolutionStrategy}:
        raise ValueError(
            f"Invalid strategy '{strategy}': must be one of local, remote, merge"
        )
    record = await service.resolve(key, strategy)
    return _text(
        f"Resolved {key} using {strategy}",
        {
            "key": record.key,
            "value": record.value,
            "last_modified": record.last_modified,
            "deleted": record.deleted,
        },
    )


async def _handle_kv_status(
    service: SyncService, args: dict
) -> types.CallToolResult:
    queue = service.queue_status()
    last = service.last_report
    lines = [
        f"Connectivity: {'online' if service.online else 'offline'}",
        f"Pending mutations: {queue['count']}",
    ]
    if last is not None:
        lines.append("")
        lines.append(last.summary())
    structured: dict[str, Any] = {
        "online": service.online,
        "queue": queue,
        "last_sync": report_to_json(last) if last is not None else None,
    }
    return _text("\n".join(lines), structured)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


KV_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="kv_get",
            description=(
                "Read a value. Defaults to the local replica, which works "
                "offline; source='remote' reads the remote store directly."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "key": _KEY_PROPERTY,
                    "source": {
                        "type": "string",
                        "enum": ["local", "remote"],
                        "default": "local",
                    },
                },
                "required": ["key"],
            },
        ),
        handler=_handle_kv_get,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_put",
            description=(
                "Write a JSON value. Stored locally first, then pushed; "
                "queued for the next sync when the remote is unreachable."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "key": _KEY_PROPERTY,
                    "value": {"description": "Any JSON value"},
                },
                "required": ["key", "value"],
            },
        ),
        handler=_handle_kv_put,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_delete",
            description="Delete a key on both replicas (queued when offline).",
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"key": _KEY_PROPERTY},
                "required": ["key"],
            },
        ),
        handler=_handle_kv_delete,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_sync",
            description=(
                "Replay queued writes and reconcile local and remote "
                "replicas. Reports conflicts instead of overwriting them."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
        handler=_handle_kv_sync,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_resolve",
            description=(
                "Resolve a conflict reported by kv_sync: keep the local "
                "value, the remote value, or merge both objects."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "key": _KEY_PROPERTY,
                    "strategy": {
                        "type": "string",
                        "enum": ["local", "remote", "merge"],
                    },
                },
                "required": ["key", "strategy"],
            },
        ),
        handler=_handle_kv_resolve,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_status",
            description=(
                "Show connectivity, queued writes awaiting sync and the "
                "result of the last sync pass."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
        handler=_handle_kv_status,
    ),
]

KV_TOOLS: list[types.Tool] = [spec.tool for spec in KV_SPECS]
