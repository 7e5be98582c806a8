"""MCP tool handlers for sync jobs.

Defines the job tools:

- ``sync_import`` / ``sync_export`` -- queue a single-item sync.
- ``sync_bulk_import`` / ``sync_bulk_export`` -- queue a batch job.
- ``sync_mapping`` -- re-sync an existing local/remote pair.
- ``sync_webhook`` -- feed a remote change notification.
- ``sync_job_status`` -- job summary with history.
- ``sync_job_cancel`` / ``sync_job_retry`` -- job control.
- ``sync_stats`` -- queue counters.

Service calls touch the database, so every handler runs them through
``run_sync``.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...errors import ValidationError
from ...sync.engine import SyncService
from ...sync.models import (
    BulkSyncRequest,
    ResolutionStrategy,
    SyncDirection,
    SyncResult,
)
from ...sync.reporter import format_job_report, format_queue_stats, job_to_json
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_STRATEGIES = [s.value for s in ResolutionStrategy]
_ONE_WAY = [SyncDirection.REMOTE_TO_LOCAL.value, SyncDirection.LOCAL_TO_REMOTE.value]

_ACTOR_PROP = {
    "type": "string",
    "description": "Who requested the operation (recorded in job history)",
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_import",
        description=(
            "Queue an import of one remote item into a local document. "
            "Creates the document and mapping if the item is not mapped yet."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "remote_key": {
                    "type": "string",
                    "description": "Remote item key (e.g. PROJ-42)",
                },
                "project_key": {
                    "type": "string",
                    "description": "Remote project key",
                },
                "actor": _ACTOR_PROP,
            },
            "required": ["remote_key"],
        },
    ),
    types.Tool(
        name="sync_export",
        description=(
            "Queue an export of one local document to the remote tracker. "
            "Unmapped documents need project_key to create the remote item."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "local_id": {
                    "type": "string",
                    "description": "Local document id",
                },
                "project_key": {
                    "type": "string",
                    "description": "Remote project to create the item in",
                },
                "actor": _ACTOR_PROP,
            },
            "required": ["local_id"],
        },
    ),
    types.Tool(
        name="sync_bulk_import",
        description="Queue one job importing several remote items.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "remote_keys": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Remote item keys to import",
                },
                "project_key": {"type": "string"},
                "auto_resolve_conflicts": {
                    "type": "boolean",
                    "default": False,
                    "description": "Resolve conflicts with conflict_strategy instead of failing the item",
                },
                "conflict_strategy": {
                    "type": "string",
                    "enum": _STRATEGIES,
                },
                "actor": _ACTOR_PROP,
            },
            "required": ["remote_keys"],
        },
    ),
    types.Tool(
        name="sync_bulk_export",
        description="Queue one job exporting several local documents.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "local_ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Local document ids to export",
                },
                "project_key": {"type": "string"},
                "auto_resolve_conflicts": {"type": "boolean", "default": False},
                "conflict_strategy": {
                    "type": "string",
                    "enum": _STRATEGIES,
                },
                "actor": _ACTOR_PROP,
            },
            "required": ["local_ids"],
        },
    ),
    types.Tool(
        name="sync_mapping",
        description=(
            "Queue a sync of an existing mapping in one direction, with "
            "three-way conflict detection against the last synced values."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "mapping_id": {"type": "string"},
                "direction": {"type": "string", "enum": _ONE_WAY},
                "auto_resolve_conflicts": {"type": "boolean", "default": False},
                "conflict_strategy": {
                    "type": "string",
                    "enum": _STRATEGIES,
                },
                "actor": _ACTOR_PROP,
            },
            "required": ["mapping_id", "direction"],
        },
    ),
    types.Tool(
        name="sync_webhook",
        description=(
            "Process a remote change notification. Queues an import when "
            "the item is mapped with auto-sync enabled."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "payload": {
                    "type": "object",
                    "description": "Webhook body (webhookEvent, issueKey, issueId, timestamp, changelog)",
                },
            },
            "required": ["payload"],
        },
    ),
    types.Tool(
        name="sync_job_status",
        description="Show job status, progress, failed items, and history.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "job_id": {"type": "string"},
            },
            "required": ["job_id"],
        },
    ),
    types.Tool(
        name="sync_job_cancel",
        description="Cancel a job that has not started yet.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "job_id": {"type": "string"},
                "actor": _ACTOR_PROP,
            },
            "required": ["job_id"],
        },
    ),
    types.Tool(
        name="sync_job_retry",
        description="Retry a failed job if it is under its retry limit.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "job_id": {"type": "string"},
                "actor": _ACTOR_PROP,
            },
            "required": ["job_id"],
        },
    ),
    types.Tool(
        name="sync_stats",
        description="Show job counts by status.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}},
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _actor(args: dict[str, Any]) -> str:
    return args.get("actor") or "mcp"


def _require(args: dict[str, Any], name: str) -> Any:
    value = args.get(name)
    if not value:
        raise ValidationError(f"{name} is required")
    return value


def _strategy(args: dict[str, Any]) -> ResolutionStrategy | None:
    raw = args.get("conflict_strategy")
    return ResolutionStrategy(raw) if raw else None


def _queued(result: SyncResult) -> types.CallToolResult:
    if result.success:
        text = f"Queued job {result.job_id} ({result.direction.value})"
    else:
        text = f"No job queued: {result.error}"
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result.model_dump(mode="json"),
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync_import(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    result = await run_sync(
        service.import_from_remote,
        _require(args, "remote_key"),
        args.get("project_key"),
        _actor(args),
    )
    return _queued(result)


async def _handle_sync_export(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    result = await run_sync(
        service.export_to_remote,
        _require(args, "local_id"),
        args.get("project_key"),
        _actor(args),
    )
    return _queued(result)


async def _handle_bulk(
    service: SyncService, args: dict[str, Any], export: bool
) -> types.CallToolResult:
    request = BulkSyncRequest(
        project_key=args.get("project_key"),
        local_ids=args.get("local_ids") or [],
        remote_keys=args.get("remote_keys") or [],
        auto_resolve_conflicts=bool(args.get("auto_resolve_conflicts", False)),
        conflict_strategy=_strategy(args),
    )
    func = service.bulk_export if export else service.bulk_import
    response = await run_sync(func, request, _actor(args))
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Queued job {response.job_id} with {response.total_items} item(s)",
            )
        ],
        structuredContent=response.model_dump(mode="json"),
    )


async def _handle_sync_bulk_import(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    return await _handle_bulk(service, args, export=False)


async def _handle_sync_bulk_export(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    return await _handle_bulk(service, args, export=True)


async def _handle_sync_mapping(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    direction = SyncDirection(_require(args, "direction"))
    result = await run_sync(
        service.sync_mapping,
        _require(args, "mapping_id"),
        direction,
        _actor(args),
        bool(args.get("auto_resolve_conflicts", False)),
        _strategy(args),
    )
    return _queued(result)


async def _handle_sync_webhook(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    payload = args.get("payload")
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")
    result = await run_sync(service.handle_webhook, payload)
    return _queued(result)


async def _handle_sync_job_status(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    job_id = _require(args, "job_id")
    job = await run_sync(service.get_job, job_id)
    if job is None:
        raise ValidationError(f"Sync job {job_id} not found")
    history = await run_sync(service.get_job_history, job_id)
    data = job_to_json(job)
    data["history"] = [h.model_dump(mode="json") for h in history]
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_job_report(job, history))],
        structuredContent=data,
    )


async def _handle_sync_job_cancel(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    job = await run_sync(service.cancel_job, _require(args, "job_id"), _actor(args))
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Cancelled job {job.id}")],
        structuredContent=job_to_json(job),
    )


async def _handle_sync_job_retry(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    job = await run_sync(service.retry_job, _require(args, "job_id"), _actor(args))
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Job {job.id} queued for retry {job.retry_count}/{job.max_retries}",
            )
        ],
        structuredContent=job_to_json(job),
    )


async def _handle_sync_stats(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    stats = await run_sync(service.get_stats)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_queue_stats(stats))],
        structuredContent=stats.model_dump(),
    )


# ---------------------------------------------------------------------------
# ToolSpec list for registry-based dispatch
# ---------------------------------------------------------------------------

_BY_NAME = {tool.name: tool for tool in SYNC_TOOLS}

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(_BY_NAME["sync_import"], read_only=False, handler=_handle_sync_import),
    ToolSpec(_BY_NAME["sync_export"], read_only=False, handler=_handle_sync_export),
    ToolSpec(
        _BY_NAME["sync_bulk_import"],
        read_only=False,
        handler=_handle_sync_bulk_import,
    ),
    ToolSpec(
        _BY_NAME["sync_bulk_export"],
        read_only=False,
        handler=_handle_sync_bulk_export,
    ),
    ToolSpec(_BY_NAME["sync_mapping"], read_only=False, handler=_handle_sync_mapping),
    ToolSpec(_BY_NAME["sync_webhook"], read_only=False, handler=_handle_sync_webhook),
    ToolSpec(
        _BY_NAME["sync_job_status"],
        read_only=True,
        handler=_handle_sync_job_status,
    ),
    ToolSpec(
        _BY_NAME["sync_job_cancel"],
        read_only=False,
        handler=_handle_sync_job_cancel,
    ),
    ToolSpec(
        _BY_NAME["sync_job_retry"],
        read_only=False,
        handler=_handle_sync_job_retry,
    ),
    ToolSpec(_BY_NAME["sync_stats"], read_only=True, handler=_handle_sync_stats),
]
