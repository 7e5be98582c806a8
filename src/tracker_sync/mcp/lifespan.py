"""Lifespan management for MCP server startup and shutdown."""

import importlib
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_yaml_fallbacks
from ..sync.engine import SyncService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def load_factory(path: str) -> Any:
    """Import ``package.module:callable`` and call it with no arguments.

    Raises:
        RuntimeError: If the module or attribute cannot be loaded.
    """
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise RuntimeError(f"Cannot load factory '{path}': {e}") from e
    return factory()


def build_collaborators(config: Config) -> tuple[Any, Any]:
    """Build the remote item client and local document store.

    Raises:
        RuntimeError: If a factory is not configured or fails to load.
    """
    missing = [
        env
        for env, value in (
            ("TRACKER_SYNC_REMOTE_FACTORY", config.remote_factory),
            ("TRACKER_SYNC_STORE_FACTORY", config.store_factory),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(
            f"Collaborator factories not configured. Set {', '.join(missing)}."
        )
    return load_factory(config.remote_factory), load_factory(config.store_factory)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the collaborators and the SyncService, then start the job queue

    On shutdown:
    - Stop the queue workers and dispose of the store engine

    Args:
        config_overrides: Optional dict with config values from CLI (database_url, debug)

    Yields:
        Dict with 'service' key containing the running SyncService

    Raises:
        RuntimeError: If configuration is invalid or a collaborator cannot be built.
    """
    logger.info("MCP server starting...")
    _stderr_print("Tracker Sync MCP Server starting...")

    try:
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = to_yaml_fallbacks(unified)
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            database_url=overrides.get("database_url"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Sync store: {config.database_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        remote, documents = build_collaborators(config)
        service = SyncService.from_config(config, remote, documents)
    except Exception as e:
        logger.error("Failed to build sync service: %s", e)
        _stderr_print("ERROR: Sync service could not be started.")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Sync service startup failed: {e}") from e

    await service.start()
    _stderr_print(f"  Queue workers: {config.max_concurrent_jobs}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"service": service}
    finally:
        logger.info("MCP server shutting down")
        await service.stop()
        service.store.dispose()
        _stderr_print("Tracker Sync MCP Server shutting down.")
