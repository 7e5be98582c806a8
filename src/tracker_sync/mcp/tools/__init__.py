"""MCP tool handlers for sync operations.

This package wraps the SyncService with async handlers, text reports, and
structured error responses.
"""

from .conflicts import CONFLICT_SPECS, CONFLICT_TOOLS
from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + CONFLICT_SPECS

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "CONFLICT_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "CONFLICT_TOOLS",
]
