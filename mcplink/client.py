"""
MCP client.

The caller-facing entry point: owns one transport, performs session
initialization once, and routes requests either to the transport or, when
offline or failing, to the offline queue.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from .errors import CapabilityUnsupportedError, RequestAbortedError
from .queue import OfflineQueue
from .streamable_http.streamable_http_base import DEFAULT_PROTOCOL_VERSION
from .streamable_http.streamable_http_client import (
    FileLike,
    RequestOptions,
    StreamOptions,
    Transport,
    TransportCapability,
    UploadOptions,
)


logger = logging.getLogger(__name__)


class InitPhase(Enum):
    """Initialization state of a client."""
    NOT_STARTED = "not_started"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


def queued_ack() -> Dict[str, bool]:
    """Result returned in place of a response for a deferred request."""
    return {"queued": True}


class McpClient:
    """
    Client for an MCP server.

    Concurrent ``initialize`` calls share one in-flight attempt. A generation
    counter, bumped on each new attempt and on ``close()``, keeps a
    superseded attempt from marking the client initialized.
    """

    def __init__(self, transport: Transport, queue: Optional[OfflineQueue] = None):
        """
        Initialize the client.

        Args:
            transport: Transport used for all calls
            queue: Optional offline queue for deferred requests
        """
        self.transport = transport
        self.queue = queue

        self._init_phase = InitPhase.NOT_STARTED
        self._init_task: Optional[asyncio.Future] = None
        self._init_result: Any = None
        self._generation = 0

    @property
    def init_phase(self) -> InitPhase:
        return self._init_phase

    @property
    def is_initialized(self) -> bool:
        return self._init_phase is InitPhase.DONE

    @property
    def server_info(self) -> Any:
        """Cached result of a successful ``initialize``."""
        return self._init_result

    async def initialize(self, client_info: Optional[Dict[str, Any]] = None) -> Any:
        """
        Establish the session, once.

        Args:
            client_info: ``clientInfo`` sent to the server (name, version)

        Returns:
            The server's initialize result

        Raises:
            RequestAbortedError: If ``close()`` cancelled the attempt
        """
        if self._init_phase is InitPhase.DONE:
            return self._init_result

        if self._init_phase is not InitPhase.IN_FLIGHT:
            self._generation += 1
            self._init_task = asyncio.ensure_future(
                self._run_initialize(client_info or {}, self._generation)
            )
            self._init_phase = InitPhase.IN_FLIGHT

        task = self._init_task
        try:
            # Shielded so one caller's cancellation does not cancel the shared attempt.
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise RequestAbortedError("MCP initialize cancelled by close()")
            raise

    async def _run_initialize(self, client_info: Dict[str, Any], generation: int) -> Any:
        params = {
            "protocolVersion": DEFAULT_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": client_info,
        }
        try:
            result = await self.transport.request("initialize", params)
        except asyncio.CancelledError:
            logger.info(f"MCP initialize of generation {generation} cancelled")
            raise
        except Exception as e:
            if generation == self._generation:
                self._init_phase = InitPhase.FAILED
                self._init_task = None
            logger.warning(f"MCP initialize failed: {e}")
            raise

        if generation != self._generation:
            logger.info(f"Discarding initialize result from superseded generation {generation}")
            return result

        self._init_result = result
        self._init_phase = InitPhase.DONE
        self._init_task = None
        logger.info("MCP client initialized")
        return result

    async def request(
        self,
        method: str,
        params: Any = None,
        options: Optional[RequestOptions] = None
    ) -> Any:
        """
        Send a request, deferring it to the offline queue when possible.

        Args:
            method: JSON-RPC method name
            params: Optional parameters for the method
            options: Optional per-call options

        Returns:
            The result, or ``{"queued": True}`` when the call was deferred
        """
        if self.queue is not None and not await self.queue.is_online():
            await self.queue.enqueue(method, params)
            logger.info(f"Offline; queued request '{method}'")
            return queued_ack()

        try:
            return await self.transport.request(method, params, options)
        except Exception as e:
            if self.queue is None:
                raise
            await self.queue.enqueue(method, params)
            logger.warning(f"Request '{method}' queued due to error: {e}")
            return queued_ack()

    async def list_tools(self) -> Any:
        return await self.request("tools/list")

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        params = {"name": name}
        if arguments is not None:
            params["arguments"] = arguments
        return await self.request("tools/call", params)

    async def stream(
        self,
        method: str,
        params: Any = None,
        options: Optional[StreamOptions] = None
    ) -> AsyncIterator[Any]:
        """Stream a request's replies straight from the transport."""
        if not self.transport.supports(TransportCapability.STREAM):
            raise CapabilityUnsupportedError("stream")
        async for message in self.transport.stream(method, params, options):
            yield message

    async def upload(self, file: FileLike, options: Optional[UploadOptions] = None) -> Any:
        if not self.transport.supports(TransportCapability.UPLOAD):
            raise CapabilityUnsupportedError("upload")
        return await self.transport.upload(file, options)

    async def flush_queue(self) -> int:
        """
        Replay queued requests through the transport, oldest first.

        Returns:
            Number of requests delivered (0 without a queue)
        """
        if self.queue is None:
            return 0

        async def send(item):
            await self.transport.request(item.method, item.params)

        return await self.queue.flush(send)

    async def close(self) -> None:
        """Cancel any in-flight initialize, reset state and end the session."""
        task = self._init_task
        self._generation += 1
        self._init_phase = InitPhase.NOT_STARTED
        self._init_task = None
        self._init_result = None

        if task is not None and not task.done():
            task.cancel()
            # Wait until the cancelled attempt has unwound its HTTP call.
            await asyncio.wait({task})

        if self.transport.supports(TransportCapability.CLOSE):
            await self.transport.close()
        else:
            logger.debug("Transport has no close capability; reset local state only")

    async def __aenter__(self) -> "McpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = ["InitPhase", "McpClient", "queued_ack"]
