"""Runtime configuration for the sync engine and MCP server.

Reads settings from CLI args, environment variables, .env files, and YAML
config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    TRACKER_SYNC_DATABASE_URL: SQLAlchemy URL of the sync store
        (optional, default: sqlite:///tracker_sync.db)
    TRACKER_SYNC_MAX_CONCURRENT_JOBS: Worker count (optional, default: 3)
    TRACKER_SYNC_MAX_RETRIES: Job-level retry limit (optional, default: 3)
    TRACKER_SYNC_FIELD_CACHE_TTL: Field-mapping cache TTL in seconds
        (optional, default: 300)
    TRACKER_SYNC_CONFLICT_RETENTION_DAYS: Age after which resolved conflicts
        are purged (optional, default: 30)
    TRACKER_SYNC_REMOTE_FACTORY: ``module:callable`` building the remote
        item client (required by the MCP server)
    TRACKER_SYNC_STORE_FACTORY: ``module:callable`` building the local
        document store (required by the MCP server)
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///tracker_sync.db"
DEFAULT_RETRY_DELAYS = (1.0, 5.0, 15.0, 60.0)


@dataclass
class Config:
    database_url: str = DEFAULT_DATABASE_URL
    max_concurrent_jobs: int = 3
    max_retries: int = 3
    retry_delays: tuple[float, ...] = field(
        default_factory=lambda: DEFAULT_RETRY_DELAYS
    )
    field_cache_ttl: float = 300.0
    conflict_retention_days: int = 30
    job_retention_days: int = 30
    remote_factory: str | None = None
    store_factory: str | None = None
    debug: bool = False


def _validate_factory_path(name: str, value: str | None) -> None:
    if value is None:
        return
    module, sep, attr = value.partition(":")
    if not sep or not module.strip() or not attr.strip():
        raise ValueError(
            f"Invalid {name} '{value}': expected 'package.module:callable'"
        )


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a value is out of range or malformed.
    """
    config.database_url = config.database_url.strip()
    if not config.database_url:
        raise ValueError(
            "Database URL cannot be empty. Set TRACKER_SYNC_DATABASE_URL."
        )
    if "://" not in config.database_url:
        raise ValueError(
            f"Invalid database URL '{config.database_url}': expected a SQLAlchemy URL such as sqlite:///sync.db"
        )

    if not (1 <= config.max_concurrent_jobs <= 64):
        raise ValueError(
            f"Invalid max_concurrent_jobs {config.max_concurrent_jobs}: must be between 1 and 64"
        )
    if not (0 <= config.max_retries <= 10):
        raise ValueError(
            f"Invalid max_retries {config.max_retries}: must be between 0 and 10"
        )
    if config.field_cache_ttl < 0:
        raise ValueError("field_cache_ttl cannot be negative")
    if not config.retry_delays or any(d < 0 for d in config.retry_delays):
        raise ValueError(
            "retry_delays must be a non-empty list of non-negative seconds"
        )
    if config.conflict_retention_days < 1 or config.job_retention_days < 1:
        raise ValueError("Retention horizons must be at least one day")

    _validate_factory_path("remote_factory", config.remote_factory)
    _validate_factory_path("store_factory", config.store_factory)


def _int_from_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    database_url: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        database_url: Override store URL (takes precedence over env and YAML).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value cannot be parsed or fails validation.
    """
    fb = yaml_fallbacks or {}

    final_url = (
        database_url
        or os.getenv("TRACKER_SYNC_DATABASE_URL")
        or fb.get("database_url")
        or DEFAULT_DATABASE_URL
    )

    max_jobs = _int_from_env("TRACKER_SYNC_MAX_CONCURRENT_JOBS", 1, 64)
    if max_jobs is None:
        max_jobs = int(fb.get("max_concurrent_jobs", 3))

    max_retries = _int_from_env("TRACKER_SYNC_MAX_RETRIES", 0, 10)
    if max_retries is None:
        max_retries = int(fb.get("max_retries", 3))

    ttl_raw = os.getenv("TRACKER_SYNC_FIELD_CACHE_TTL")
    if ttl_raw is not None:
        try:
            cache_ttl = float(ttl_raw)
        except ValueError:
            raise ValueError(
                f"Invalid TRACKER_SYNC_FIELD_CACHE_TTL '{ttl_raw}': must be a number of seconds"
            ) from None
    else:
        cache_ttl = float(fb.get("field_cache_ttl", 300.0))

    retention = _int_from_env(
        "TRACKER_SYNC_CONFLICT_RETENTION_DAYS", 1, 3650
    )
    if retention is None:
        retention = int(fb.get("conflict_retention_days", 30))

    if debug:
        final_debug = True
    else:
        env_debug = os.getenv("TRACKER_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug.lower() in ("true", "1", "yes", "on")
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        database_url=final_url,
        max_concurrent_jobs=max_jobs,
        max_retries=max_retries,
        retry_delays=tuple(
            float(d) for d in fb.get("retry_delays", DEFAULT_RETRY_DELAYS)
        ),
        field_cache_ttl=cache_ttl,
        conflict_retention_days=retention,
        job_retention_days=int(fb.get("job_retention_days", 30)),
        remote_factory=os.getenv("TRACKER_SYNC_REMOTE_FACTORY")
        or fb.get("remote_factory"),
        store_factory=os.getenv("TRACKER_SYNC_STORE_FACTORY")
        or fb.get("store_factory"),
        debug=final_debug,
    )

    validate_config(config)

    return config
