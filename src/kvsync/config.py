"""Runtime configuration for the kvsync server and engine.

Reads remote store settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    KVSYNC_API_URL: Remote store base URL (required)
    KVSYNC_API_KEY: Bearer token for the remote store (required)
    KVSYNC_USER_ID: User scope sent as X-User-ID (optional, default: anonymous)
    KVSYNC_DATA_DIR: Directory for store.json / queue.json (optional, default: .kvsync/data)
    KVSYNC_NAMESPACE: Key prefix of engine-managed records (optional, default: copywriting_ai_)
    KVSYNC_INSECURE: Skip SSL verification (optional, default: false)
    KVSYNC_REQUEST_TIMEOUT: Remote read timeout in seconds (optional, default: 30)
    KVSYNC_POLL_INTERVAL: Connectivity probe interval in seconds (optional, default: 15)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "copywriting_ai_"
DEFAULT_DATA_DIR = ".kvsync/data"


@dataclass
class Config:
    api_url: str
    api_key: str
    user_id: str = "anonymous"
    data_dir: str = DEFAULT_DATA_DIR
    namespace: str = DEFAULT_NAMESPACE
    insecure: bool = False
    debug: bool = False
    request_timeout: float = 30.0
    poll_interval: float = 15.0


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid, the API key is empty or an
            interval is not positive.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.api_key.strip():
        raise ValueError(
            "API key cannot be empty. Set KVSYNC_API_KEY environment variable."
        )

    if not config.user_id.strip():
        config.user_id = "anonymous"

    if config.request_timeout <= 0:
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: must be positive"
        )

    if config.poll_interval <= 0:
        raise ValueError(
            f"Invalid poll interval {config.poll_interval}: must be positive"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float(key: str, fallbacks: dict, fb_key: str, default: float) -> float:
    """Resolve a positive number from env var, YAML fallback or default."""
    raw = os.getenv(key)
    if raw is not None:
        try:
            value = float(raw)
        except ValueError:
            raise ValueError(
                f"Invalid {key} '{raw}': must be a positive number"
            ) from None
        if value <= 0:
            raise ValueError(
                f"Invalid {key} '{raw}': must be a positive number"
            )
        return value
    if fb_key in fallbacks:
        return float(fallbacks[fb_key])
    return default


def load_config(
    api_url: str | None = None,
    api_key: str | None = None,
    user_id: str | None = None,
    data_dir: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override remote store URL.
        api_key: Override bearer token.
        user_id: Override user scope.
        data_dir: Override local data directory.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened values from the YAML ``remote`` and
            ``storage`` sections.  Used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the API URL or key is missing after checking all
            sources, or any value is malformed.
    """
    fb = yaml_fallbacks or {}

    final_url = api_url or os.getenv("KVSYNC_API_URL") or fb.get("api_url")
    if not final_url:
        raise ValueError(
            "API URL not found. Set KVSYNC_API_URL environment variable, "
            "pass --api-url CLI argument, or add 'api_url' to config.yml."
        )

    final_key = api_key or os.getenv("KVSYNC_API_KEY") or fb.get("api_key")
    if not final_key:
        raise ValueError(
            "API key not found. Set KVSYNC_API_KEY environment variable, "
            "pass --api-key CLI argument, or add 'api_key' to config.yml."
        )

    final_user = (
        user_id
        or os.getenv("KVSYNC_USER_ID")
        or fb.get("user_id")
        or "anonymous"
    )
    final_data_dir = (
        data_dir
        or os.getenv("KVSYNC_DATA_DIR")
        or fb.get("data_dir")
        or DEFAULT_DATA_DIR
    )
    final_namespace = os.getenv("KVSYNC_NAMESPACE")
    if final_namespace is None:
        final_namespace = fb.get("namespace", DEFAULT_NAMESPACE)

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("KVSYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("KVSYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        api_url=final_url.strip(),
        api_key=final_key.strip(),
        user_id=final_user.strip(),
        data_dir=final_data_dir,
        namespace=final_namespace,
        insecure=final_insecure,
        debug=final_debug,
        request_timeout=_get_float(
            "KVSYNC_REQUEST_TIMEOUT", fb, "request_timeout", 30.0
        ),
        poll_interval=_get_float(
            "KVSYNC_POLL_INTERVAL", fb, "poll_interval", 15.0
        ),
    )

    validate_config(config)

    return config
