"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync passes:

- ``format_sync_report`` -- full post-sync summary.
- ``format_conflict`` -- one conflict, both sides pretty-printed.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import ConflictEntry, SyncReport


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    if report.success:
        lines.append(
            f"Sync completed, processed {report.items_processed} items"
        )
    else:
        lines.append(f"Sync failed: {report.error_message or 'unknown error'}")
    if report.started_at:
        lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{report.replayed} replayed, {report.pushed} pushed, "
        f"{report.pulled} pulled, {len(report.conflicts)} conflicts, "
        f"{len(report.failed_keys)} failed"
    )
    lines.append("")

    if report.conflicts:
        lines.append("Conflicts (resolve with local, remote or merge):")
        for conflict in report.conflicts:
            lines.append(f"  {conflict.key}")
        lines.append("")

    if report.failed_keys:
        lines.append("Failed (queued for retry where possible):")
        for key in report.failed_keys:
            lines.append(f"  {key}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflict(conflict: ConflictEntry) -> str:
    """Format a single conflict for review, showing both values."""
    return "\n".join(
        [
            f"Conflict: {conflict.key}",
            "--- local ---",
            _pretty(conflict.local_value),
            "--- remote ---",
            _pretty(conflict.remote_value),
        ]
    )


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The sync report.

    Returns:
        Dict with status, counts, conflicts and failed keys.
    """
    result: dict = {
        "success": report.success,
        "items_processed": report.items_processed,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "replayed": report.replayed,
            "pushed": report.pushed,
            "pulled": report.pulled,
            "conflicts": len(report.conflicts),
            "failed": len(report.failed_keys),
        },
        "conflicts": [
            {
                "key": c.key,
                "local": c.local_value,
                "remote": c.remote_value,
            }
            for c in report.conflicts
        ],
        "failed_keys": list(report.failed_keys),
    }
    if report.error_message:
        result["error_message"] = report.error_message
    return result
