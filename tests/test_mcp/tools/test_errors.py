"""Tests for mcp/tools/errors.py - error response builders.

Covers:
- build_error_response() structure and format
- translate_sync_error() mapping of the exception hierarchy
"""

import mcp.types as types
import pytest
from pydantic import BaseModel

from tracker_sync.errors import (
    ConflictError,
    JobConfigurationError,
    PersistenceError,
    RemoteError,
    ValidationError,
)
from tracker_sync.mcp.tools.errors import build_error_response, translate_sync_error


def _get_error_text(result: types.CallToolResult) -> str:
    """Extract text from first content item with type narrowing for Pyright."""
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class _Strict(BaseModel):
    count: int


# ---------------------------------------------------------------------------
# build_error_response tests
# ---------------------------------------------------------------------------


class TestBuildErrorResponse:
    """Tests for build_error_response()."""

    def test_is_error_result(self):
        result = build_error_response("validation_error", "Bad", "Fix it")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_error_format(self):
        """Text format is 'Error ({type}): {message}\\n\\nAction: {action}'."""
        result = build_error_response(
            "validation_error", "Job j1 not found", "Use sync_stats"
        )
        assert (
            _get_error_text(result)
            == "Error (validation_error): Job j1 not found\n\nAction: Use sync_stats"
        )

    def test_structured_content(self):
        result = build_error_response(
            "conflict", "Blocked", "Resolve", {"conflict_ids": ["c-1"]}
        )
        assert result.structuredContent == {
            "error_type": "conflict",
            "message": "Blocked",
            "conflict_ids": ["c-1"],
        }


# ---------------------------------------------------------------------------
# translate_sync_error tests
# ---------------------------------------------------------------------------


class TestTranslateSyncError:
    """Tests for translate_sync_error()."""

    @pytest.mark.parametrize(
        ("error", "error_type"),
        [
            (ValidationError("mapping not found"), "validation_error"),
            (ValueError("bad direction"), "validation_error"),
            (ConflictError("blocked"), "conflict"),
            (RemoteError("tracker down"), "sync_error"),
            (PersistenceError("disk full"), "sync_error"),
            (JobConfigurationError("bidirectional"), "sync_error"),
            (RuntimeError("boom"), "server_error"),
        ],
    )
    def test_error_types(self, error, error_type):
        result = translate_sync_error(error)
        assert result.structuredContent["error_type"] == error_type
        assert f"Error ({error_type}): {error}" in _get_error_text(result)

    def test_pydantic_validation_error(self):
        with pytest.raises(Exception) as excinfo:
            _Strict(count="many")
        result = translate_sync_error(excinfo.value)
        assert result.structuredContent["error_type"] == "validation_error"

    def test_conflict_action_mentions_resolve_tool(self):
        result = translate_sync_error(ConflictError("blocked", ["c-1", "c-2"]))
        assert "conflict_resolve" in _get_error_text(result)
        assert result.structuredContent["conflict_ids"] == ["c-1", "c-2"]
