"""MCP Server for tracker sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents queue sync jobs, inspect their progress, and settle conflicts.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.engine import SyncService
from ..sync.reporter import format_queue_stats
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("tracker-sync")

# Global service instance (initialized in lifespan)
_service: SyncService | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- check the sync store and queue."""
    stats = await run_sync(service.get_stats)
    state = "running" if service.queue.is_running else "stopped"
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Tracker sync server {__version__}, queue {state}. {format_queue_stats(stats)}",
            )
        ]
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test tracker sync server health and return queue counters",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    read_only=True,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> SyncService:
    """Get the global SyncService instance.

    Raises:
        RuntimeError: If the service is not initialized
    """
    if _service is None:
        raise RuntimeError(
            "SyncService not initialized. Server lifespan not started."
        )
    return _service


def set_service(service: SyncService | None) -> None:
    global _service
    _service = service


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Args:
        config_overrides: Optional dict with config values to override
            (database_url, debug, log_file, read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    read_only = overrides.get("read_only", False)
    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_service() is called here, not in the lifespan, so that running this
    # file as __main__ still updates this module's globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="tracker-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_service(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Tracker Sync - MCP server for document/tracker synchronization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .tracker_sync/config.yml)
  tracker-sync-mcp

  # Use a PostgreSQL sync store
  tracker-sync-mcp --database-url postgresql://sync@localhost/sync

  # Expose only read-only tools
  tracker-sync-mcp --read-only

Collaborators are built from TRACKER_SYNC_REMOTE_FACTORY and
TRACKER_SYNC_STORE_FACTORY (package.module:callable).
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--database-url",
        help="Override the sync store URL (takes precedence over TRACKER_SYNC_DATABASE_URL and config files)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/tracker-sync.log",
        help="Log file path (default: /tmp/tracker-sync.log)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that do not queue or change anything",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"tracker-sync version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.database_url:
        config_overrides["database_url"] = args.database_url
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.debug:
        config_overrides["debug"] = True
    if args.read_only:
        config_overrides["read_only"] = True

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
