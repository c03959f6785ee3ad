"""Runtime configuration for synchronization passes.

Reads engine settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    ZGW_SYNC_STORE: Path of the JSON object store (optional, default: .zgw_sync/store.json)
    ZGW_SYNC_MAX_PARALLEL: Candidates processed concurrently (optional, default: 1)
    ZGW_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Config:
    store_path: str = ".zgw_sync/store.json"
    max_parallel: int = 1
    debug: bool = False
    log_file: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the store path is empty or max_parallel is out of range.
    """
    config.store_path = config.store_path.strip()

    if not config.store_path:
        raise ValueError(
            "Store path cannot be empty. Set ZGW_SYNC_STORE environment variable."
        )

    if not (1 <= config.max_parallel <= 64):
        raise ValueError(
            f"Invalid max_parallel '{config.max_parallel}': must be a number between 1 and 64"
        )

    if config.max_parallel > 1:
        logger.info(
            "Concurrent candidate processing enabled: max_parallel=%d",
            config.max_parallel,
        )


def load_config(
    store_path: str | None = None,
    max_parallel: int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        store_path: Override store path.
        max_parallel: Override concurrency limit.
        debug: Enable debug logging (CLI flag).
        log_file: Log file path (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``sync`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value from the environment is malformed.
    """
    fb = yaml_fallbacks or {}

    final_store = (
        store_path
        or os.getenv("ZGW_SYNC_STORE")
        or fb.get("store_path")
        or ".zgw_sync/store.json"
    )

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("ZGW_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    if max_parallel is not None:
        final_max_parallel = max_parallel
    else:
        max_parallel_raw = os.getenv("ZGW_SYNC_MAX_PARALLEL")
        if max_parallel_raw is not None:
            try:
                final_max_parallel = int(max_parallel_raw)
            except ValueError:
                raise ValueError(
                    f"Invalid ZGW_SYNC_MAX_PARALLEL '{max_parallel_raw}': must be a number between 1 and 64"
                ) from None
        elif "max_parallel" in fb:
            final_max_parallel = int(fb["max_parallel"])
        else:
            final_max_parallel = 1

    config = Config(
        store_path=final_store,
        max_parallel=final_max_parallel,
        debug=final_debug,
        log_file=log_file,
    )

    validate_config(config)

    return config
