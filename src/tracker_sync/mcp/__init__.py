"""MCP server exposing sync operations as tools."""
