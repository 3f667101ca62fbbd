"""
YAML configuration file discovery and loading for kvsync.

Config files are optional.  When present they are merged with "project
wins" semantics and string values may reference environment variables
as ``${VAR}`` or ``${VAR:-default}``, which keeps secrets such as the
API key out of the file itself::

    remote:
      api_url: https://api.example.com
      api_key: ${KVSYNC_API_KEY}
      user_id: ${USER:-anonymous}
    storage:
      data_dir: ~/.local/share/kvsync
    logging:
      level: DEBUG

Usage:
    from kvsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    An unset or empty variable falls back to *default*, or to ``""`` when
    there is no default.  Text that does not match the pattern is kept.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Return existing config file paths, highest precedence first.

    Search order:
        1. ``KVSYNC_CONFIG`` env var (explicit single path)
        2. ``.kvsync/config.yml`` in CWD
        3. ``.kvsync/config.yaml`` in CWD
        4. ``~/.config/kvsync/config.yml``
    """
    candidates: list[Path] = []

    env_path = os.environ.get("KVSYNC_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / ".kvsync" / "config.yml")
    candidates.append(cwd / ".kvsync" / "config.yaml")
    candidates.append(Path.home() / ".config" / "kvsync" / "config.yml")

    return [p for p in candidates if p.exists()]


def _load_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest precedence to highest; top-level keys
    of a higher-precedence file replace (not deep-merge) earlier ones.
    Env var interpolation runs after the merge.

    Returns an empty dict when no config file exists.

    Raises:
        yaml.YAMLError: If a discovered file is not valid YAML.
        OSError: If a discovered file cannot be read.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml(path)
        except (OSError, yaml.YAMLError):
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
