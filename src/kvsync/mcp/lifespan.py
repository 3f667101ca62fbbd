"""Lifespan management for MCP server startup and shutdown."""

import asyncio
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import LoggingConfig, build_config, yaml_fallbacks
from ..connectivity import ConnectivityMonitor
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.service import SyncService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def _apply_logging_config(
    settings: LoggingConfig, overrides: dict[str, Any]
) -> None:
    """Reconfigure MCP-mode logging from the YAML ``logging`` section.

    ``--log-file`` and ``LOG_FILE`` still win over the file value, and
    ``LOG_LEVEL`` over the level (see ``setup_logging``).
    """
    if settings.level is None and settings.file is None:
        return
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file")
        or os.getenv("LOG_FILE")
        or settings.file,
        level=settings.level,
        force=True,
    )
    logger.info("Logging reconfigured from config file")


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env, then YAML config files as fallback values
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Probe the remote store once to seed the connectivity monitor.  An
      unreachable remote is not fatal: the server starts offline and
      queues writes.
    - Start the background connectivity watcher

    On shutdown:
    - Stop the watcher, cancel in-flight sync passes and requeue anything
      drained but unconfirmed

    Args:
        config_overrides: Optional dict with CLI values (api_url, api_key,
            user_id, data_dir, insecure, debug, log_file)

    Yields:
        Dict with 'service' (SyncService) and 'config' keys

    Raises:
        RuntimeError: If configuration is invalid or local storage is unusable.
    """
    logger.info("MCP server starting...")
    _stderr_print("kvsync server starting...")

    try:
        load_dotenv()

        overrides = config_overrides or {}
        fallbacks: dict[str, Any] | None = None
        sources = []
        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            fallbacks = yaml_fallbacks(unified)
            _apply_logging_config(unified.logging, overrides)
            sources.append(f"config file: {config_files[0]}")

        config = load_config(
            api_url=overrides.get("api_url"),
            api_key=overrides.get("api_key"),
            user_id=overrides.get("user_id"),
            data_dir=overrides.get("data_dir"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Remote store: {config.api_url}")
        _stderr_print(f"  Data directory: {config.data_dir}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure KVSYNC_API_URL and KVSYNC_API_KEY are set."
        ) from e

    monitor = ConnectivityMonitor(initial=False)
    try:
        service = SyncService.from_config(config, monitor)
    except Exception as e:
        logger.error("Failed to open local store: %s", e)
        _stderr_print(f"ERROR: Failed to open local store: {e}")
        raise RuntimeError(f"Local store error: {e}") from e

    # Going online here triggers the service's first sync pass
    reachable = await run_sync(service.remote.validate_connection)
    monitor.set_online(reachable)
    if reachable:
        _stderr_print("  Remote store reachable")
    else:
        logger.warning("Remote store unreachable; starting offline")
        _stderr_print("  Remote store unreachable; writes will be queued")
    pending = len(service.queue)
    if pending:
        _stderr_print(f"  {pending} queued mutation(s) awaiting sync")

    stop = asyncio.Event()
    watcher = asyncio.create_task(
        monitor.watch(
            service.remote.validate_connection, config.poll_interval, stop
        )
    )

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield {"service": service, "config": config}
    finally:
        logger.info("MCP server shutting down")
        stop.set()
        watcher.cancel()
        with suppress(asyncio.CancelledError):
            await watcher
        await service.close()
        _stderr_print("kvsync server shutting down.")
