"""Validated schema for the kvsync YAML configuration.

Three sections, each optional:

- ``remote``  -- remote store endpoint, credentials and timings.
- ``storage`` -- local data directory and key namespace.
- ``logging`` -- log level and file.

``yaml_fallbacks()`` flattens the first two into the keyword dict that
``kvsync.config.load_config`` accepts, so CLI args and env vars still
take precedence over file values.  The ``logging`` section is applied by
the server lifespan once the files are loaded.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .config import DEFAULT_DATA_DIR, DEFAULT_NAMESPACE


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote store connection settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    api_url: str | None = Field(default=None, description="Remote store URL")
    api_key: str | None = Field(default=None, description="Bearer token")
    user_id: str | None = Field(
        default=None, description="User scope sent as X-User-ID"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Read timeout for remote requests in seconds",
    )
    poll_interval: float = Field(
        default=15.0,
        gt=0,
        le=3600,
        description="Seconds between connectivity probes",
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Local persistence settings."""

    data_dir: str = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory holding store.json and queue.json",
    )
    namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        description="Key prefix of records managed by the sync engine",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str | None = Field(
        default=None,
        description="Log level; unset keeps the per-mode default",
    )
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level configuration; ``UnifiedConfig()`` is always valid."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory and adapters
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Raises:
        pydantic.ValidationError: If a section has invalid values.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the ``remote`` and ``storage`` sections for ``load_config``.

    Unset optional values are left out so they do not mask defaults.
    """
    remote = unified.remote.model_dump(exclude_none=True)
    storage = unified.storage.model_dump()
    return {**remote, **storage}
