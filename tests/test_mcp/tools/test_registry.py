"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec creation and immutability
- ToolRegistry read-only filtering
- ToolRegistry list_tools, tool_count, call_tool
- Error translation for handler exceptions
"""

import asyncio
import unittest
from unittest.mock import MagicMock

import mcp.types as types

from tracker_sync.errors import ConflictError, RemoteError, ValidationError
from tracker_sync.mcp.tools import ALL_SPECS
from tracker_sync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, read_only: bool = False, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(service, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        read_only=read_only,
        handler=handler,
    )


def _raising(exc: Exception):
    async def handler(service, args):
        raise exc

    return handler


class TestToolSpec(unittest.TestCase):
    """Test ToolSpec dataclass."""

    def test_creation(self):
        spec = _make_spec("sync_stats", read_only=True)
        self.assertEqual(spec.tool.name, "sync_stats")
        self.assertTrue(spec.read_only)

    def test_frozen(self):
        spec = _make_spec("sync_stats")
        with self.assertRaises(AttributeError):
            spec.read_only = True


class TestToolRegistry(unittest.TestCase):
    """Test ToolRegistry class."""

    def setUp(self):
        self.specs = [
            _make_spec("ping", read_only=True),
            _make_spec("sync_import"),
            _make_spec("sync_job_status", read_only=True),
            _make_spec("conflict_resolve"),
        ]

    def test_all_tools_registered(self):
        registry = ToolRegistry(self.specs)
        self.assertEqual(registry.tool_count(), 4)

    def test_read_only_drops_write_tools(self):
        registry = ToolRegistry(self.specs, read_only=True)
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["ping", "sync_job_status"])

    def test_read_only_tools_unreachable(self):
        registry = ToolRegistry(self.specs, read_only=True)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("sync_import", {}, MagicMock()))

    def test_list_tools_returns_tool_objects(self):
        for tool in ToolRegistry(self.specs).list_tools():
            self.assertIsInstance(tool, types.Tool)

    def test_call_tool_dispatches_to_handler(self):
        calls = []

        async def handler(service, args):
            calls.append((service, args))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="dispatched")]
            )

        registry = ToolRegistry([_make_spec("sync_stats", handler=handler)])
        service = MagicMock()

        result = asyncio.run(
            registry.call_tool("sync_stats", {"key": "val"}, service)
        )

        self.assertEqual(calls, [(service, {"key": "val"})])
        self.assertEqual(result.content[0].text, "dispatched")

    def test_call_tool_none_arguments(self):
        calls = []

        async def handler(service, args):
            calls.append(args)
            return types.CallToolResult(content=[])

        registry = ToolRegistry([_make_spec("sync_stats", handler=handler)])
        asyncio.run(registry.call_tool("sync_stats", None, MagicMock()))
        self.assertEqual(calls, [{}])

    def test_unknown_tool_raises(self):
        registry = ToolRegistry(self.specs)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("wiki_get", {}, MagicMock()))


class TestCallToolErrors(unittest.TestCase):
    """Handler exceptions become structured error results."""

    def _call(self, exc: Exception) -> types.CallToolResult:
        registry = ToolRegistry([_make_spec("t", handler=_raising(exc))])
        return asyncio.run(registry.call_tool("t", {}, MagicMock()))

    def test_validation_error(self):
        result = self._call(ValidationError("mapping_id is required"))
        self.assertTrue(result.isError)
        self.assertEqual(result.structuredContent["error_type"], "validation_error")

    def test_conflict_error_carries_ids(self):
        result = self._call(ConflictError("blocked", conflict_ids=["c-1"]))
        self.assertEqual(result.structuredContent["error_type"], "conflict")
        self.assertEqual(result.structuredContent["conflict_ids"], ["c-1"])

    def test_sync_error(self):
        result = self._call(RemoteError("tracker down"))
        self.assertEqual(result.structuredContent["error_type"], "sync_error")

    def test_unexpected_error(self):
        with self.assertLogs("tracker_sync.mcp.tools.registry", level="ERROR"):
            result = self._call(RuntimeError("boom"))
        self.assertEqual(result.structuredContent["error_type"], "server_error")


class TestShippedSpecs(unittest.TestCase):
    """Sanity checks on the tools the server exposes."""

    def test_names_unique(self):
        names = [s.tool.name for s in ALL_SPECS]
        self.assertEqual(len(names), len(set(names)))

    def test_read_only_subset(self):
        registry = ToolRegistry(ALL_SPECS, read_only=True)
        names = {t.name for t in registry.list_tools()}
        self.assertEqual(names, {"sync_job_status", "sync_stats", "conflict_list"})

    def test_schemas_are_objects(self):
        for spec in ALL_SPECS:
            self.assertEqual(spec.tool.inputSchema["type"], "object")
