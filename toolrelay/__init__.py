"""ToolRelay: run tools over HTTP and broadcast their results to SSE subscribers."""

__version__ = "0.1.0"
