"""
Error definitions for the MCP client core.

This module defines custom exception classes for the failures that can
occur while talking to an MCP server over Streamable HTTP: HTTP status
failures, JSON-RPC protocol errors, streaming problems, and client-side
capability or configuration errors.
"""

from typing import Any, Optional


class McpClientError(Exception):
    """Base exception for all MCP client errors."""

    def __init__(self, message: str):
        """
        Initialize the client error.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message."""
        return self.message


class HttpStatusError(McpClientError):
    """Non-2xx HTTP response from the server."""

    def __init__(self, status: int, body: Optional[str] = None):
        """
        Initialize the HTTP status error.

        Args:
            status: HTTP status code
            body: Truncated response body for diagnostics (optional)
        """
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}")

    def _format_message(self) -> str:
        """Format the error message with the response body if available."""
        base_message = super()._format_message()
        if self.body:
            return f"{base_message}: {self.body}"
        return base_message

    @property
    def is_client_error(self) -> bool:
        """Whether the status is a 4xx client error."""
        return 400 <= self.status < 500


class JsonRpcError(McpClientError):
    """Protocol-level JSON-RPC error returned by the server."""

    def __init__(self, code: int, message: str, data: Any = None):
        """
        Initialize the JSON-RPC error.

        Args:
            code: JSON-RPC error code
            message: Error message from the server
            data: Optional error data
        """
        self.code = code
        self.data = data
        super().__init__(message)

    def _format_message(self) -> str:
        """Format the error message with the error code."""
        return f"{self.message} (code: {self.code})"


class JsonRpcParseError(JsonRpcError):
    """Response could not be parsed as JSON."""

    def __init__(self, message: str = "Parse error", data: Any = None):
        super().__init__(-32700, message, data)


class JsonRpcInvalidRequestError(JsonRpcError):
    """Invalid request error."""

    def __init__(self, message: str = "Invalid Request", data: Any = None):
        super().__init__(-32600, message, data)


class JsonRpcMethodNotFoundError(JsonRpcError):
    """Method not found error."""

    def __init__(self, message: str = "Method not found", data: Any = None):
        super().__init__(-32601, message, data)


class JsonRpcInvalidParamsError(JsonRpcError):
    """Invalid params error."""

    def __init__(self, message: str = "Invalid params", data: Any = None):
        super().__init__(-32602, message, data)


class JsonRpcInternalError(JsonRpcError):
    """Internal error."""

    def __init__(self, message: str = "Internal error", data: Any = None):
        super().__init__(-32603, message, data)


class StreamUnsupportedError(McpClientError):
    """Response body cannot be read incrementally."""


class NoDataInStreamError(McpClientError):
    """An SSE response ended without a single usable data line."""

    def __init__(self, message: str = "No valid SSE data found in response"):
        super().__init__(message)


class MissingFileDataError(McpClientError):
    """Upload requested without exactly one of in-memory data or a URI."""

    def __init__(self, message: str, file_name: str = None):
        """
        Initialize the missing file data error.

        Args:
            message: Error message
            file_name: Name of the file being uploaded (optional)
        """
        self.file_name = file_name
        super().__init__(message)

    def _format_message(self) -> str:
        """Format the error message with the file name if available."""
        base_message = super()._format_message()
        if self.file_name:
            return f"{base_message} (file: {self.file_name})"
        return base_message


class CapabilityUnsupportedError(McpClientError):
    """The transport does not implement the requested capability."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Transport does not support {capability}")


class RetriesExhaustedError(McpClientError):
    """Request failed after all retry attempts."""

    def __init__(self, method: str, attempts: int):
        self.method = method
        self.attempts = attempts
        super().__init__(f"MCP request '{method}' failed after {attempts} attempts")


class TransportConnectionError(McpClientError):
    """Network-level failure before an HTTP response was received."""


class RequestAbortedError(McpClientError):
    """An in-flight call was aborted by the caller's signal or by close()."""


class RequestTimeoutError(McpClientError):
    """A single request attempt ran past its timeout."""


class ConfigError(McpClientError):
    """Error in configuration."""

    def __init__(self, message: str, config_key: str = None):
        """
        Initialize the configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error (optional)
        """
        self.config_key = config_key
        super().__init__(message)

    def _format_message(self) -> str:
        """Format the error message with config key if available."""
        base_message = super()._format_message()
        if self.config_key:
            return f"{base_message} (config: {self.config_key})"
        return base_message


__all__ = [
    "McpClientError",
    "HttpStatusError",
    "JsonRpcError",
    "JsonRpcParseError",
    "JsonRpcInvalidRequestError",
    "JsonRpcMethodNotFoundError",
    "JsonRpcInvalidParamsError",
    "JsonRpcInternalError",
    "StreamUnsupportedError",
    "NoDataInStreamError",
    "MissingFileDataError",
    "CapabilityUnsupportedError",
    "RetriesExhaustedError",
    "TransportConnectionError",
    "RequestAbortedError",
    "RequestTimeoutError",
    "ConfigError",
]
