"""
Streamable HTTP Client Transport

This module provides the HTTP transport used by the MCP client: JSON-RPC
requests over POST with retry and backoff, SSE-framed streaming responses,
multipart uploads, and session setup and teardown.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any, AsyncIterator, Awaitable, Dict, Iterator, Optional, Tuple, Union
from urllib.parse import unquote, urlparse

import httpx

from ..auth import resolve_auth_headers
from ..errors import (
    CapabilityUnsupportedError,
    HttpStatusError,
    MissingFileDataError,
    RequestAbortedError,
    RequestTimeoutError,
    RetriesExhaustedError,
    TransportConnectionError,
)
from .retry import RetryPolicy
from .session import SessionState
from .streamable_http_base import (
    ACCEPT_JSON_AND_SSE,
    ACCEPT_SSE,
    DEFAULT_PROTOCOL_VERSION,
    SESSION_ID_HEADER,
    JsonRpcCodec,
    parse_sse_response,
    parse_sse_stream,
    redact_headers,
)


# Configure logging
logger = logging.getLogger(__name__)


ERROR_BODY_LIMIT = 200
CLOSE_OK_STATUSES = (200, 204, 404)


class TransportCapability(Flag):
    """Operations a transport implements."""
    REQUEST = auto()
    STREAM = auto()
    UPLOAD = auto()
    CLOSE = auto()


@dataclass
class RequestOptions:
    """Per-call options for ``request``."""
    timeout: Optional[float] = None
    signal: Optional[asyncio.Event] = None
    endpoint: Optional[str] = None


@dataclass
class StreamOptions:
    """Per-call options for ``stream``."""
    signal: Optional[asyncio.Event] = None
    endpoint: Optional[str] = None


@dataclass
class UploadOptions:
    """Per-call options for ``upload``."""
    fields: Dict[str, str] = field(default_factory=dict)
    path: Optional[str] = None
    timeout: Optional[float] = None


@dataclass
class FileLike:
    """A file to upload, given either as bytes or as a local path / file URI."""
    name: str
    type: Optional[str] = None
    uri: Optional[str] = None
    data: Optional[Union[bytes, bytearray, memoryview]] = None


@dataclass
class TransportConfig:
    """Configuration for the Streamable HTTP transport."""

    # Server connection
    server_url: str = "http://localhost:8000"
    endpoint: str = "/mcp"
    upload_path: str = "/files"

    # Timeout settings
    connection_timeout: float = 10.0
    read_timeout: Optional[float] = 60.0
    # Whole-attempt limit for request() when the caller passes none
    request_timeout: Optional[float] = None

    # Retry settings
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    # Headers
    headers: Dict[str, str] = field(default_factory=dict)
    auth_provider: Any = None


class Transport:
    """
    Interface shared by MCP transports.

    Optional operations are advertised through ``capabilities``; callers
    check ``supports()`` before invoking them.
    """

    capabilities = TransportCapability.REQUEST | TransportCapability.STREAM

    def supports(self, capability: TransportCapability) -> bool:
        return capability in self.capabilities

    async def request(self, method: str, params: Any = None, options: Optional[RequestOptions] = None) -> Any:
        raise NotImplementedError

    def stream(self, method: str, params: Any = None, options: Optional[StreamOptions] = None) -> AsyncIterator[Any]:
        raise NotImplementedError

    async def upload(self, file: FileLike, options: Optional[UploadOptions] = None) -> Any:
        raise CapabilityUnsupportedError("upload")

    async def close(self) -> None:
        raise CapabilityUnsupportedError("close")


class HttpTransport(Transport):
    """
    MCP transport over Streamable HTTP.

    One instance holds at most one session. Request ids are allocated per
    instance starting at 1 and are never reused.
    """

    capabilities = (
        TransportCapability.REQUEST
        | TransportCapability.STREAM
        | TransportCapability.UPLOAD
        | TransportCapability.CLOSE
    )

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the transport.

        Args:
            config: Optional transport configuration
            http_client: Optional pre-built httpx client (not closed by ``aclose``)
        """
        self.config = config or TransportConfig()
        self.server_url = self.config.server_url.rstrip("/")
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._session = SessionState.initial()
        self._next_request_id = 1
        self._sleep = asyncio.sleep

        logger.info(f"HttpTransport initialized for {self.server_url}{self.config.endpoint}")

    @property
    def session(self) -> SessionState:
        """Current session state."""
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id

    @property
    def protocol_version(self) -> Optional[str]:
        return self._session.protocol_version

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self.config.read_timeout,
                    connect=self.config.connection_timeout,
                ),
            )
        return self._http_client

    def _allocate_request_id(self) -> int:
        request_id = self._next_request_id
        self._next_request_id += 1
        return request_id

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    async def _build_headers(
        self,
        extra: Dict[str, str],
        json_body: bool = True
    ) -> httpx.Headers:
        """
        Merge headers: defaults, base headers, auth headers, then call headers.

        Later sources replace earlier ones case-insensitively.
        """
        headers = httpx.Headers()
        if json_body:
            headers["Content-Type"] = "application/json"
        headers.update(self.config.headers)
        headers.update(await resolve_auth_headers(self.config.auth_provider))
        headers.update(extra)
        return headers

    async def _with_signal(self, awaitable: Awaitable, signal: Optional[asyncio.Event], what: str) -> Any:
        """Await ``awaitable``, aborting it if ``signal`` is set first."""
        if signal is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise RequestAbortedError(f"{what} aborted by caller")

    async def _status_error(self, response: httpx.Response) -> HttpStatusError:
        """Build an HttpStatusError carrying a truncated response body."""
        body = None
        try:
            await response.aread()
            text = response.text
            if text:
                body = text[:ERROR_BODY_LIMIT]
                if len(text) > ERROR_BODY_LIMIT:
                    body += "..."
        except httpx.HTTPError as e:
            logger.debug(f"Could not read error body for HTTP {response.status_code}: {e}")
        return HttpStatusError(response.status_code, body)

    def _attempt_timeout(self, options: RequestOptions) -> Optional[float]:
        # A caller-supplied signal takes precedence over the timeout.
        if options.signal is not None:
            return None
        if options.timeout is not None:
            return options.timeout
        return self.config.request_timeout

    async def _with_timeout(self, awaitable: Awaitable, timeout: Optional[float], what: str) -> Any:
        """Await ``awaitable``, cancelling it once ``timeout`` seconds have passed."""
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(f"{what} timed out after {timeout}s")

    async def request(
        self,
        method: str,
        params: Any = None,
        options: Optional[RequestOptions] = None
    ) -> Any:
        """
        Send a JSON-RPC request and return its result.

        Args:
            method: JSON-RPC method name
            params: Optional parameters for the method
            options: Optional timeout, abort signal and endpoint override

        Returns:
            The decoded ``result`` of the response

        Raises:
            HttpStatusError: If the server answers with a non-2xx status
            JsonRpcError: If the server answers with a JSON-RPC error
            TransportConnectionError: If the server cannot be reached
            RequestAbortedError: If the caller's signal or ``close()`` aborted the call
            RequestTimeoutError: If the last attempt ran past its timeout
        """
        options = options or RequestOptions()
        url = self._url(options.endpoint or self.config.endpoint)
        request_id = self._allocate_request_id()
        body = JsonRpcCodec.encode_request(request_id, method, params)
        policy = self.config.retry_policy
        timeout = self._attempt_timeout(options)
        what = f"MCP request '{method}'"

        # Never present a prior session while negotiating a new one.
        generation = None
        if method == "initialize":
            if not self._session.is_empty:
                logger.warning(
                    f"MCP initialize called with existing session "
                    f"{self._session.session_id!r}; clearing session headers"
                )
            self._session = self._session.begin_initialize()
            generation = self._session.generation

        for attempt in range(policy.max_attempts):
            try:
                return await self._with_signal(
                    self._with_timeout(
                        self._send_request(url, method, request_id, body, attempt, timeout, generation),
                        timeout,
                        what,
                    ),
                    options.signal,
                    what,
                )
            except Exception as e:
                logger.warning(
                    f"MCP request '{method}' (id={request_id}) failed on attempt {attempt + 1}: {e}",
                    extra={"method": method, "session_id": self._session.session_id},
                )
                if not policy.allows_retry(e, attempt):
                    raise

                delay = policy.delay_for(attempt)
                logger.info(f"Retrying '{method}' in {delay}s")
                await self._sleep(delay)

        raise RetriesExhaustedError(method, policy.max_attempts)

    async def _send_request(
        self,
        url: str,
        method: str,
        request_id: int,
        body: Dict[str, Any],
        attempt: int,
        timeout: Optional[float],
        generation: Optional[int]
    ) -> Any:
        """
        Perform one POST exchange and decode the reply.

        ``generation`` is set only for ``initialize``: the session generation
        opened when the call started.
        """
        is_initialize = generation is not None

        if is_initialize:
            if self._session.generation != generation:
                raise RequestAbortedError(
                    f"MCP initialize (id={request_id}) superseded by close(); not resending"
                )
            extra_headers = {}
        else:
            extra_headers = self._session.headers()

        headers = await self._build_headers(extra_headers)
        headers["Accept"] = ACCEPT_JSON_AND_SSE

        logger.debug(
            f"MCP request start: method={method} id={request_id} url={url} "
            f"attempt={attempt} headers={redact_headers(dict(headers))}",
            extra={"method": method, "session_id": extra_headers.get(SESSION_ID_HEADER)},
        )
        started_at = time.monotonic()
        http_client = self._get_http_client()

        try:
            async with http_client.stream(
                "POST",
                url,
                json=body,
                headers=headers,
                timeout=httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            ) as response:
                if not response.is_success:
                    raise await self._status_error(response)

                content_type = response.headers.get("content-type", "")
                session_id = response.headers.get(SESSION_ID_HEADER)
                encoding = response.charset_encoding or "utf-8"

                if "text/event-stream" in content_type:
                    result = await parse_sse_response(response.aiter_bytes(), encoding)
                else:
                    content = await response.aread()
                    result = None
                    if content.strip():
                        result = JsonRpcCodec.decode_response(JsonRpcCodec.loads(content))
        except httpx.TransportError as e:
            raise TransportConnectionError(f"Request error: {e}")

        elapsed = time.monotonic() - started_at
        logger.debug(
            f"MCP request complete: method={method} id={request_id} "
            f"status={response.status_code} content_type={content_type!r} elapsed={elapsed:.3f}s",
            extra={"method": method, "session_id": session_id or extra_headers.get(SESSION_ID_HEADER)},
        )

        if is_initialize:
            self._commit_initialize(generation, session_id, result)

        return result

    def _commit_initialize(self, generation: int, session_id: Optional[str], result: Any) -> None:
        if self._session.generation != generation:
            logger.warning(
                f"Discarding initialize response from superseded session generation {generation}"
            )
            return

        protocol_version = DEFAULT_PROTOCOL_VERSION
        if isinstance(result, dict) and result.get("protocolVersion"):
            protocol_version = str(result["protocolVersion"])

        self._session = self._session.ready(session_id, protocol_version)
        logger.debug(
            f"MCP session initialized: session_id={session_id!r} protocol_version={protocol_version}"
        )

    async def stream(
        self,
        method: str,
        params: Any = None,
        options: Optional[StreamOptions] = None
    ) -> AsyncIterator[Any]:
        """
        Send a JSON-RPC request and stream the SSE-framed replies.

        A partially consumed stream cannot be replayed, so there is no retry.

        Args:
            method: JSON-RPC method name
            params: Optional parameters for the method
            options: Optional abort signal and endpoint override

        Yields:
            Decoded messages as they arrive
        """
        options = options or StreamOptions()
        url = self._url(options.endpoint or self.config.endpoint)
        request_id = self._allocate_request_id()
        body = JsonRpcCodec.encode_request(request_id, method, params)

        headers = await self._build_headers(self._session.headers())
        headers["Accept"] = ACCEPT_SSE

        logger.debug(
            f"MCP stream start: method={method} id={request_id} url={url} "
            f"headers={redact_headers(dict(headers))}"
        )
        http_client = self._get_http_client()
        request = http_client.build_request(
            "POST",
            url,
            json=body,
            headers=headers,
            timeout=httpx.Timeout(None, connect=self.config.connection_timeout),
        )

        try:
            response = await self._with_signal(
                http_client.send(request, stream=True),
                options.signal,
                f"MCP stream '{method}'",
            )
        except httpx.TransportError as e:
            raise TransportConnectionError(f"Request error: {e}")

        try:
            if not response.is_success:
                raise await self._status_error(response)

            logger.debug(
                f"MCP stream established: method={method} id={request_id} "
                f"status={response.status_code} "
                f"content_type={response.headers.get('content-type', '')!r}"
            )
            messages = parse_sse_stream(response.aiter_bytes(), response.charset_encoding or "utf-8")
            while True:
                try:
                    message = await self._with_signal(
                        messages.__anext__(),
                        options.signal,
                        f"MCP stream '{method}'",
                    )
                except StopAsyncIteration:
                    break
                yield message
        except httpx.TransportError as e:
            raise TransportConnectionError(f"Stream error: {e}")
        finally:
            await response.aclose()

    async def upload(self, file: FileLike, options: Optional[UploadOptions] = None) -> Any:
        """
        Upload a file as multipart form data.

        Args:
            file: File given as bytes or as a local path / file URI
            options: Optional extra form fields, path override and timeout

        Returns:
            The decoded JSON body of the response

        Raises:
            MissingFileDataError: If the file has neither (or both) data and uri
            HttpStatusError: If the server answers with a non-2xx status
        """
        options = options or UploadOptions()
        url = self._url(options.path or self.config.upload_path)
        self._check_file_source(file)

        # The multipart boundary is chosen by httpx.
        headers = await self._build_headers(self._session.headers(), json_body=False)
        headers.pop("content-type", None)

        logger.debug(f"MCP upload start: url={url} file={file.name} headers={redact_headers(dict(headers))}")
        started_at = time.monotonic()
        http_client = self._get_http_client()

        timeout = httpx.USE_CLIENT_DEFAULT
        if options.timeout is not None:
            timeout = httpx.Timeout(options.timeout)

        try:
            with self._open_file_part(file) as file_part:
                response = await http_client.post(
                    url,
                    data=dict(options.fields),
                    files={"file": file_part},
                    headers=headers,
                    timeout=timeout,
                )
        except httpx.TransportError as e:
            raise TransportConnectionError(f"Upload error: {e}")

        if not response.is_success:
            raise await self._status_error(response)

        logger.debug(
            f"MCP upload complete: url={url} status={response.status_code} "
            f"elapsed={time.monotonic() - started_at:.3f}s"
        )
        if not response.content.strip():
            return None
        return JsonRpcCodec.loads(response.content)

    @staticmethod
    def _check_file_source(file: FileLike) -> None:
        if (file.data is None) == (file.uri is None):
            raise MissingFileDataError("FileLike must include exactly one of data or uri", file.name)

    @contextmanager
    def _open_file_part(self, file: FileLike) -> Iterator[Tuple[str, Any, str]]:
        """
        Yield the multipart file tuple for ``file``.

        A ``uri`` is opened rather than read, so httpx streams it from disk;
        the handle is closed when the block exits.
        """
        self._check_file_source(file)
        content_type = file.type or "application/octet-stream"
        if file.data is not None:
            yield file.name, bytes(file.data), content_type
            return

        path = self._uri_to_path(file.uri, file.name)
        try:
            handle = open(path, "rb")
        except OSError as e:
            raise MissingFileDataError(f"Cannot read file data from {file.uri}: {e}", file.name)
        with handle:
            yield file.name, handle, content_type

    @staticmethod
    def _uri_to_path(uri: str, file_name: str) -> str:
        parsed = urlparse(uri)
        if parsed.scheme == "file":
            return unquote(parsed.path)
        # Bare paths, including Windows drive letters parsed as a scheme.
        if len(parsed.scheme) <= 1:
            return uri
        raise MissingFileDataError(f"Unsupported file URI scheme: {parsed.scheme}", file_name)

    async def close(self) -> None:
        """
        Terminate the session.

        Local state is cleared first and unconditionally; the DELETE sent to
        the server is best-effort and its failures are only logged.
        """
        previous = self._session
        self._session = previous.closed()

        if not previous.has_session:
            logger.warning("No active MCP session to close")
            return

        url = self._url(self.config.endpoint)
        try:
            headers = await self._build_headers(previous.headers(), json_body=False)
            logger.debug(f"MCP close start: url={url} headers={redact_headers(dict(headers))}")
            response = await self._get_http_client().delete(url, headers=headers)
            if response.status_code in CLOSE_OK_STATUSES:
                logger.debug(f"MCP session closed: {previous.session_id}")
            else:
                logger.warning(
                    f"Unexpected HTTP {response.status_code} closing MCP session {previous.session_id}"
                )
        except Exception as e:
            logger.warning(f"Error closing MCP session {previous.session_id}: {e}")

    async def aclose(self) -> None:
        """Release the underlying HTTP client if this transport created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
        await self.aclose()


# Export symbols
__all__ = [
    "FileLike",
    "HttpTransport",
    "RequestOptions",
    "StreamOptions",
    "Transport",
    "TransportCapability",
    "TransportConfig",
    "UploadOptions",
]
