"""Core building blocks shared by the sync engine and the MCP surface."""
