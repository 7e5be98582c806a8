"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so AI agents can
recover without human intervention.
"""

from typing import Any

import mcp.types as types
from pydantic import ValidationError as PydanticValidationError

from ...errors import ConflictError, SyncError, ValidationError


def build_error_response(
    error_type: str,
    message: str,
    corrective_action: str,
    details: dict[str, Any] | None = None,
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (validation_error, conflict, sync_error,
            server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error
        details: Optional machine-readable extras (e.g. conflict ids)

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("validation_error", "Job j1 not found", "Use sync_stats to inspect the queue.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"
    structured: dict[str, Any] = {"error_type": error_type, "message": message}
    if details:
        structured.update(details)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        structuredContent=structured,
        isError=True,
    )


def translate_sync_error(error: Exception) -> types.CallToolResult:
    """Translate an exception raised by the sync service to a response."""
    match error:
        case ValidationError() | PydanticValidationError() | ValueError():
            return build_error_response(
                "validation_error",
                str(error),
                "Check parameter values and retry.",
            )
        case ConflictError():
            return build_error_response(
                "conflict",
                str(error),
                "Resolve the conflicts with conflict_resolve, then run sync_mapping again.",
                {"conflict_ids": error.conflict_ids},
            )
        case SyncError():
            return build_error_response(
                "sync_error",
                str(error),
                "Check the remote tracker and document store, then retry the job with sync_job_retry.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Check the server log or retry later.",
            )
