"""Bitrix24 MCP server and paginated REST client."""

__version__ = "0.1.0"
