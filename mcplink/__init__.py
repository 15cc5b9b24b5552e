"""
mcplink

Client core for MCP (Model Context Protocol) servers over Streamable HTTP,
with session negotiation, retry and an offline request queue.
"""

from .auth import AuthProvider, StaticHeadersAuthProvider, TokenAuthProvider
from .client import InitPhase, McpClient
from .config import Config
from .errors import (
    CapabilityUnsupportedError,
    ConfigError,
    HttpStatusError,
    JsonRpcError,
    McpClientError,
    MissingFileDataError,
    NoDataInStreamError,
    RequestAbortedError,
    RequestTimeoutError,
    RetriesExhaustedError,
    StreamUnsupportedError,
    TransportConnectionError,
)
from .queue import InMemoryQueueStorage, JsonFileQueueStorage, OfflineQueue, QueuedRequest, QueueStorage
from .streamable_http import (
    FileLike,
    HttpTransport,
    RequestOptions,
    RetryPolicy,
    StreamOptions,
    Transport,
    TransportCapability,
    TransportConfig,
    UploadOptions,
)

__version__ = "1.0.0"
__all__ = [
    "AuthProvider",
    "CapabilityUnsupportedError",
    "Config",
    "ConfigError",
    "FileLike",
    "HttpStatusError",
    "HttpTransport",
    "InMemoryQueueStorage",
    "InitPhase",
    "JsonFileQueueStorage",
    "JsonRpcError",
    "McpClient",
    "McpClientError",
    "MissingFileDataError",
    "NoDataInStreamError",
    "OfflineQueue",
    "QueueStorage",
    "QueuedRequest",
    "RequestAbortedError",
    "RequestTimeoutError",
    "RequestOptions",
    "RetriesExhaustedError",
    "RetryPolicy",
    "StaticHeadersAuthProvider",
    "StreamOptions",
    "StreamUnsupportedError",
    "TokenAuthProvider",
    "Transport",
    "TransportCapability",
    "TransportConfig",
    "TransportConnectionError",
    "UploadOptions",
]
