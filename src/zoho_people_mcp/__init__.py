"""Zoho People MCP Server.

Model Context Protocol server exposing Zoho People modules, fields, records
and record timelines as tools for LLM agents, backed by a paginated,
rate-limited REST client.
"""

__version__ = "0.1.0"
