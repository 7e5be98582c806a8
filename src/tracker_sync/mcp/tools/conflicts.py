"""MCP tool handlers for sync conflicts.

- ``conflict_list`` -- list conflicts with optional filters.
- ``conflict_resolve`` -- settle a pending conflict with a strategy.
- ``conflict_ignore`` -- dismiss a pending conflict.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...errors import ValidationError
from ...sync.engine import SyncService
from ...sync.models import ConflictStatus, ResolutionStrategy, ResolveConflictRequest
from ...sync.reporter import conflict_to_json, format_conflict, format_conflict_list
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


CONFLICT_TOOLS: list[types.Tool] = [
    types.Tool(
        name="conflict_list",
        description=(
            "List sync conflicts. Filter by mapping, local document, job, "
            "or status (pending, resolved, ignored)."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "mapping_id": {"type": "string"},
                "local_id": {"type": "string"},
                "job_id": {"type": "string"},
                "status": {
                    "type": "string",
                    "enum": [s.value for s in ConflictStatus],
                },
            },
        },
    ),
    types.Tool(
        name="conflict_resolve",
        description=(
            "Resolve a pending conflict. The manual strategy requires "
            "resolved_value; merge combines both sides by value type."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "conflict_id": {"type": "string"},
                "strategy": {
                    "type": "string",
                    "enum": [s.value for s in ResolutionStrategy],
                },
                "resolved_value": {
                    "description": "Value to keep (manual strategy only)",
                },
                "apply_to_similar": {
                    "type": "boolean",
                    "default": False,
                    "description": "Also resolve other pending conflicts on the same mapping and field",
                },
                "actor": {"type": "string"},
            },
            "required": ["conflict_id", "strategy"],
        },
    ),
    types.Tool(
        name="conflict_ignore",
        description="Dismiss a pending conflict without changing either side.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "conflict_id": {"type": "string"},
                "actor": {"type": "string"},
            },
            "required": ["conflict_id"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_conflict_list(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    status = ConflictStatus(args["status"]) if args.get("status") else None
    conflicts = await run_sync(
        service.get_conflicts,
        args.get("mapping_id"),
        args.get("local_id"),
        args.get("job_id"),
        status,
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_conflict_list(conflicts))],
        structuredContent={
            "conflicts": [conflict_to_json(c) for c in conflicts],
            "total": len(conflicts),
        },
    )


async def _handle_conflict_resolve(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    if not args.get("conflict_id"):
        raise ValidationError("conflict_id is required")
    if not args.get("strategy"):
        raise ValidationError("strategy is required")

    fields: dict[str, Any] = {
        "conflict_id": args["conflict_id"],
        "strategy": ResolutionStrategy(args["strategy"]),
        "apply_to_similar": bool(args.get("apply_to_similar", False)),
    }
    # Presence matters: an explicit null is a valid manual value.
    if "resolved_value" in args:
        fields["resolved_value"] = args["resolved_value"]
    request = ResolveConflictRequest(**fields)

    outcome = await run_sync(
        service.resolve_conflict, request, args.get("actor") or "mcp"
    )
    text = format_conflict(outcome.conflict)
    if outcome.similar_resolved:
        text += f"\n\nAlso resolved {outcome.similar_resolved} similar conflict(s)."
    data = conflict_to_json(outcome.conflict)
    data["similar_resolved"] = outcome.similar_resolved
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=data,
    )


async def _handle_conflict_ignore(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    if not args.get("conflict_id"):
        raise ValidationError("conflict_id is required")
    conflict = await run_sync(
        service.ignore_conflict, args["conflict_id"], args.get("actor") or "mcp"
    )
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=f"Ignored conflict {conflict.id}")
        ],
        structuredContent=conflict_to_json(conflict),
    )


# ToolSpec list for registry-based dispatch
CONFLICT_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=CONFLICT_TOOLS[0],
        read_only=True,
        handler=_handle_conflict_list,
    ),
    ToolSpec(
        tool=CONFLICT_TOOLS[1],
        read_only=False,
        handler=_handle_conflict_resolve,
    ),
    ToolSpec(
        tool=CONFLICT_TOOLS[2],
        read_only=False,
        handler=_handle_conflict_ignore,
    ),
]
