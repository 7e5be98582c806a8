"""Unified configuration schema for tracker_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the sync store, the job queue, collaborator factories, and
logging.  Includes an adapter that flattens the sections into the fallback
dict consumed by ``config.load_config()``.

Usage:
    from tracker_sync.config_schema import build_config, to_yaml_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """Sync store connection settings."""

    url: str | None = Field(
        default=None, description="SQLAlchemy database URL"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Job queue and conflict-handling settings.

    Attributes:
        max_concurrent_jobs: Number of queue workers.
        max_retries: Job-level retry limit stored on new jobs.
        retry_delays: Backoff delays in seconds, indexed by attempt.
        field_cache_ttl: Seconds a per-direction field-mapping list is cached.
        conflict_retention_days: Age after which terminal conflicts are purged.
        job_retention_days: Age after which finished jobs are purged.
    """

    max_concurrent_jobs: int = Field(default=3, ge=1, le=64)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delays: list[float] = Field(
        default_factory=lambda: [1.0, 5.0, 15.0, 60.0]
    )
    field_cache_ttl: float = Field(default=300.0, ge=0)
    conflict_retention_days: int = Field(default=30, ge=1)
    job_retention_days: int = Field(default=30, ge=1)

    model_config = {"frozen": True}

    @field_validator("retry_delays")
    @classmethod
    def _non_negative_delays(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("retry_delays must not be empty")
        if any(d < 0 for d in value):
            raise ValueError("retry_delays must be non-negative")
        return value


class CollaboratorsConfig(BaseModel):
    """Dotted factory paths for the injected collaborators.

    Each value has the form ``package.module:callable``; the callable is
    invoked with no arguments and must return the collaborator instance.
    """

    remote_factory: str | None = Field(
        default=None, description="Factory for the remote item client"
    )
    store_factory: str | None = Field(
        default=None, description="Factory for the local document store"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: "text" or "json".
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    collaborators: CollaboratorsConfig = Field(
        default_factory=CollaboratorsConfig
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; unknown top-level keys are ignored with
    a warning.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", unknown)

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )


def to_yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config(yaml_fallbacks=...)``.

    Only values that are set are included, so env vars and built-in
    defaults still apply to everything the YAML file leaves out.
    """
    fallbacks: dict[str, Any] = {}
    if unified.database.url:
        fallbacks["database_url"] = unified.database.url
    fallbacks.update(unified.sync.model_dump())
    for key, value in unified.collaborators.model_dump().items():
        if value is not None:
            fallbacks[key] = value
    return fallbacks
