"""Core business logic: scoring, batch scanning, aggregation and data models.

This package is framework-agnostic. It has no dependency on MCP, FastMCP,
or the SQLite reference store.
"""
