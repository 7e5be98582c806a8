"""ToolSpec and ToolRegistry for MCP tool dispatch.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, a read-only
  flag, and an async handler with standardized signature
  (service, args) -> CallToolResult.
- ToolRegistry: Optionally drops write tools at construction time, then
  provides list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...errors import ValidationError
from ...sync.engine import SyncService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        read_only: True if the tool never changes jobs, mappings, or
            conflicts.
        handler: Async handler with signature (service, args) -> CallToolResult.
    """

    tool: types.Tool
    read_only: bool
    handler: Callable[[SyncService, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs.

    With ``read_only=True`` only specs flagged read-only are exposed.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if not read_only or spec.read_only:
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        service: SyncService,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Sync errors and unexpected exceptions are translated into
        structured CallToolResult responses with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            service: SyncService instance.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(service, args)
        except Exception as e:
            if not isinstance(e, (ValueError, ValidationError)):
                logger.exception("Error in tool %s", name)
            return translate_sync_error(e)
