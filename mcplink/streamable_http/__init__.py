"""
Streamable HTTP Transport Package

This package provides the client side of the Streamable HTTP transport for
MCP (Model Context Protocol): JSON-RPC over HTTP POST with optional SSE
response framing, session negotiation and retry with backoff.

Usage:
    from mcplink.streamable_http import HttpTransport, TransportConfig

    transport = HttpTransport(TransportConfig(server_url="http://localhost:3001"))
    result = await transport.request("initialize", {"clientInfo": {...}})
    tools = await transport.request("tools/list")
"""

from .retry import RetryPolicy
from .session import SessionPhase, SessionState
from .streamable_http_base import (
    DEFAULT_PROTOCOL_VERSION,
    JsonRpcCodec,
    SseDecoder,
    parse_sse_response,
    parse_sse_stream,
    redact_headers,
)
from .streamable_http_client import (
    FileLike,
    HttpTransport,
    RequestOptions,
    StreamOptions,
    Transport,
    TransportCapability,
    TransportConfig,
    UploadOptions,
)


__all__ = [
    "DEFAULT_PROTOCOL_VERSION",
    "FileLike",
    "HttpTransport",
    "JsonRpcCodec",
    "RequestOptions",
    "RetryPolicy",
    "SessionPhase",
    "SessionState",
    "SseDecoder",
    "StreamOptions",
    "Transport",
    "TransportCapability",
    "TransportConfig",
    "UploadOptions",
    "parse_sse_response",
    "parse_sse_stream",
    "redact_headers",
]
