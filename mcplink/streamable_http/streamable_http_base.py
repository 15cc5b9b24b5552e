"""
Streamable HTTP Base Implementation

This module provides the wire-level building blocks of the Streamable HTTP
transport for MCP (Model Context Protocol) clients: the JSON-RPC 2.0
envelope codec, the incremental Server-Sent Events decoder, and header
helpers shared by the transport.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Dict, Iterator, List, Mapping, Optional, Union

from ..errors import (
    JsonRpcError,
    JsonRpcInternalError,
    JsonRpcInvalidParamsError,
    JsonRpcInvalidRequestError,
    JsonRpcMethodNotFoundError,
    JsonRpcParseError,
    NoDataInStreamError,
    StreamUnsupportedError,
)


# Configure logging
logger = logging.getLogger(__name__)


JSONRPC_VERSION = "2.0"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

SESSION_ID_HEADER = "mcp-session-id"
PROTOCOL_VERSION_HEADER = "mcp-protocol-version"

ACCEPT_JSON_AND_SSE = "application/json, text/event-stream"
ACCEPT_SSE = "text/event-stream"

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

REDACTED_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key"})


_STANDARD_ERRORS = {
    -32700: JsonRpcParseError,
    -32600: JsonRpcInvalidRequestError,
    -32601: JsonRpcMethodNotFoundError,
    -32602: JsonRpcInvalidParamsError,
    -32603: JsonRpcInternalError,
}


class JsonRpcCodec:
    """Builds JSON-RPC request envelopes and decodes response envelopes."""

    @staticmethod
    def encode_request(
        request_id: Union[int, str, None],
        method: str,
        params: Any = None
    ) -> Dict[str, Any]:
        """
        Build a JSON-RPC request envelope.

        Args:
            request_id: Request identifier
            method: JSON-RPC method name
            params: Optional parameters (omitted from the envelope when None)

        Returns:
            Request envelope dictionary
        """
        request = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "method": method,
        }
        if params is not None:
            request["params"] = params
        return request

    @staticmethod
    def decode_response(payload: Any) -> Any:
        """
        Decode a JSON-RPC response envelope.

        Args:
            payload: Parsed response envelope

        Returns:
            The ``result`` member, which may be None for void results

        Raises:
            JsonRpcError: If the envelope carries an error
            JsonRpcParseError: If the payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise JsonRpcParseError("Response is not a JSON-RPC envelope", payload)

        error = payload.get("error")
        if error is not None:
            raise JsonRpcCodec.error_from_payload(error)

        return payload.get("result")

    @staticmethod
    def error_from_payload(error: Any) -> JsonRpcError:
        """Convert an ``error`` member into the matching exception."""
        if not isinstance(error, dict):
            return JsonRpcInternalError(str(error))

        code = error.get("code", -32603)
        message = error.get("message", "Unknown error")
        data = error.get("data")

        error_class = _STANDARD_ERRORS.get(code)
        if error_class is not None:
            return error_class(message, data)
        return JsonRpcError(code, message, data)

    @staticmethod
    def loads(text: Union[str, bytes]) -> Any:
        """Parse JSON text, raising JsonRpcParseError on malformed input."""
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise JsonRpcParseError(f"Failed to decode response: {e}")


def is_envelope(payload: Any) -> bool:
    """Check whether a decoded payload carries the JSON-RPC marker."""
    return isinstance(payload, dict) and bool(payload.get("jsonrpc"))


def redact_headers(headers: Optional[Mapping[str, str]]) -> Optional[Dict[str, str]]:
    """
    Return a copy of headers that is safe to log.

    Args:
        headers: Header mapping (may be None)

    Returns:
        Copy with credential-bearing values replaced by ``[redacted]``
    """
    if headers is None:
        return None

    redacted = {}
    for key, value in headers.items():
        if key.lower() in REDACTED_HEADERS:
            redacted[key] = "[redacted]"
        else:
            redacted[key] = value
    return redacted


class SseDecoder:
    """
    Incremental decoder for ``data:``-framed Server-Sent Events.

    Only the trailing, not yet terminated line is kept between chunks;
    complete lines are decoded once and never revisited.
    """

    _SKIP = object()

    def __init__(self, encoding: str = "utf-8", skip_server_messages: bool = False):
        """
        Initialize the SSE decoder.

        Args:
            encoding: Text encoding of the byte stream
            skip_server_messages: Ignore envelopes that carry a ``method``
                (server notifications and requests)

        Raises:
            StreamUnsupportedError: If the encoding has no incremental decoder
        """
        try:
            self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        except LookupError:
            raise StreamUnsupportedError(
                f"Cannot decode '{encoding}' text incrementally for streaming"
            )
        self.encoding = encoding
        self.skip_server_messages = skip_server_messages
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[Any]:
        """
        Feed a chunk and return the messages completed by it.

        Args:
            chunk: Raw bytes or already-decoded text

        Returns:
            Decoded messages, in stream order
        """
        return list(self.iter_feed(chunk))

    def iter_feed(self, chunk: Union[bytes, str]) -> Iterator[Any]:
        """
        Feed a chunk and lazily decode the lines it completes.

        The chunk is buffered before the first message is produced; each
        complete line is decoded only when the caller asks for the next
        message, so a caller that stops early never decodes the rest.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def _decode_lines(self, lines: List[str]) -> Iterator[Any]:
        for line in lines:
            message = self._decode_line(line.rstrip("\r"))
            if message is not self._SKIP:
                yield message

    def _decode_line(self, line: str) -> Any:
        if not line.startswith(SSE_DATA_PREFIX):
            return self._SKIP

        data = line[len(SSE_DATA_PREFIX):].strip()
        if not data or data == SSE_DONE_SENTINEL:
            return self._SKIP

        payload = JsonRpcCodec.loads(data)
        if not is_envelope(payload):
            return payload

        if self.skip_server_messages and "method" in payload:
            logger.debug(f"Skipping server message in SSE reply: {payload.get('method')}")
            return self._SKIP

        return JsonRpcCodec.decode_response(payload)

    def reset(self) -> None:
        """Discard any partially buffered line."""
        self._buffer = ""
        self._decoder.reset()

    def has_buffered_data(self) -> bool:
        """Check if there's a partial line waiting for more input."""
        return bool(self._buffer)


async def parse_sse_stream(
    chunks: Optional[AsyncIterator[Union[bytes, str]]],
    encoding: str = "utf-8"
) -> AsyncIterator[Any]:
    """
    Lazily decode every message of an SSE body.

    Args:
        chunks: Async iterator of body chunks
        encoding: Text encoding of the body

    Yields:
        Decoded messages as the stream progresses

    Raises:
        StreamUnsupportedError: If there is no body to read
    """
    if chunks is None:
        raise StreamUnsupportedError("Streaming not supported: response has no body")

    decoder = SseDecoder(encoding)
    async for chunk in chunks:
        for message in decoder.feed(chunk):
            yield message

    if decoder.has_buffered_data():
        logger.debug("Discarding unterminated SSE line at end of stream")


async def parse_sse_response(
    chunks: Optional[AsyncIterator[Union[bytes, str]]],
    encoding: str = "utf-8"
) -> Any:
    """
    Decode the first message of an SSE reply and stop reading.

    Args:
        chunks: Async iterator of body chunks
        encoding: Text encoding of the body

    Returns:
        The first decoded message

    Raises:
        StreamUnsupportedError: If there is no body to read
        NoDataInStreamError: If the stream ends without a usable data line
    """
    if chunks is None:
        raise StreamUnsupportedError("Streaming not supported: response has no body")

    decoder = SseDecoder(encoding, skip_server_messages=True)
    async for chunk in chunks:
        for message in decoder.iter_feed(chunk):
            return message

    raise NoDataInStreamError()


# Export symbols
__all__ = [
    "JSONRPC_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "SESSION_ID_HEADER",
    "PROTOCOL_VERSION_HEADER",
    "ACCEPT_JSON_AND_SSE",
    "ACCEPT_SSE",
    "JsonRpcCodec",
    "SseDecoder",
    "is_envelope",
    "parse_sse_response",
    "parse_sse_stream",
    "redact_headers",
]
