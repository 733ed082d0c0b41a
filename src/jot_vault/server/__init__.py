"""MCP server for Jot Vault."""
