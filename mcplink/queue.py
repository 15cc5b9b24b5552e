"""
Offline request queue.

Requests that cannot be delivered are stored and replayed later, oldest
first. Delivery is at-least-once: an item is removed from storage only
after it has been sent successfully.
"""

import inspect
import json
import logging
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Union


logger = logging.getLogger(__name__)


@dataclass
class QueuedRequest:
    """A request waiting to be replayed."""
    method: str
    params: Any = None
    id: str = field(default_factory=lambda: f"q_{uuid.uuid4().hex}")
    created_at: float = field(default_factory=time.time)


class QueueStorage:
    """Key-ordered persistence contract for queued requests."""

    async def get_all(self) -> List[QueuedRequest]:
        """Return all items in insertion order."""
        raise NotImplementedError

    async def add(self, item: QueuedRequest) -> None:
        raise NotImplementedError

    async def remove(self, item_id: str) -> None:
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError


class InMemoryQueueStorage(QueueStorage):
    """Process-local storage; contents are lost on exit."""

    def __init__(self):
        self._items: List[QueuedRequest] = []

    async def get_all(self) -> List[QueuedRequest]:
        return list(self._items)

    async def add(self, item: QueuedRequest) -> None:
        self._items.append(item)

    async def remove(self, item_id: str) -> None:
        self._items = [item for item in self._items if item.id != item_id]

    async def clear(self) -> None:
        self._items = []


class JsonFileQueueStorage(QueueStorage):
    """
    Durable storage backed by a JSON file.

    The whole list is rewritten on every change through a temporary file
    and an atomic rename, so a crash leaves either the old or the new list.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> List[QueuedRequest]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            raw_items = json.load(f)
        return [QueuedRequest(**raw) for raw in raw_items]

    def _write(self, items: List[QueuedRequest]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([asdict(item) for item in items], f)
        os.replace(tmp_path, self.path)

    async def get_all(self) -> List[QueuedRequest]:
        return self._read()

    async def add(self, item: QueuedRequest) -> None:
        items = self._read()
        items.append(item)
        self._write(items)

    async def remove(self, item_id: str) -> None:
        self._write([item for item in self._read() if item.id != item_id])

    async def clear(self) -> None:
        self._write([])


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class OfflineQueue:
    """Bounded FIFO of requests waiting for connectivity."""

    def __init__(
        self,
        storage: Optional[QueueStorage] = None,
        max_queue_size: Optional[int] = None,
        is_online: Optional[Callable[[], Union[bool, Awaitable[bool]]]] = None,
        on_enqueue: Optional[Callable[[QueuedRequest], Any]] = None
    ):
        """
        Initialize the offline queue.

        Args:
            storage: Storage backend (in-memory when omitted)
            max_queue_size: Maximum number of items kept; oldest are evicted
            is_online: Optional connectivity check, plain or async
            on_enqueue: Optional observer called with each queued item
        """
        if max_queue_size is not None and max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got: {max_queue_size}")

        self.storage = storage or InMemoryQueueStorage()
        self.max_queue_size = max_queue_size
        self._is_online = is_online
        self._on_enqueue = on_enqueue

    async def enqueue(self, method: str, params: Any = None) -> QueuedRequest:
        """
        Store a request, evicting the oldest item when the queue is full.

        Args:
            method: JSON-RPC method name
            params: Optional parameters

        Returns:
            The queued item
        """
        if self.max_queue_size:
            items = await self.storage.get_all()
            if len(items) >= self.max_queue_size:
                oldest = items[0]
                await self.storage.remove(oldest.id)
                logger.warning(
                    f"Offline queue full ({self.max_queue_size}); evicted oldest "
                    f"request {oldest.id} ({oldest.method})"
                )

        item = QueuedRequest(method=method, params=params)
        await self.storage.add(item)
        logger.debug(f"Queued request {item.id} ({method})")

        if self._on_enqueue is not None:
            try:
                await _maybe_await(self._on_enqueue(item))
            except Exception as e:
                logger.error(f"Error in on_enqueue observer: {e}")

        return item

    async def flush(self, sender: Callable[[QueuedRequest], Awaitable[Any]]) -> int:
        """
        Replay queued items in order.

        Each item is removed only after ``sender`` succeeds for it. The first
        failure stops the pass and propagates; unsent items stay queued.

        Args:
            sender: Coroutine function delivering one item

        Returns:
            Number of items delivered
        """
        items = await self.storage.get_all()
        sent = 0
        for item in items:
            await sender(item)
            await self.storage.remove(item.id)
            sent += 1

        if sent:
            logger.info(f"Flushed {sent} queued request(s)")
        return sent

    async def is_online(self) -> bool:
        """Report connectivity; assumed online when no check is configured."""
        if self._is_online is None:
            return True
        return bool(await _maybe_await(self._is_online()))

    async def size(self) -> int:
        return len(await self.storage.get_all())

    async def clear(self) -> None:
        await self.storage.clear()


__all__ = [
    "InMemoryQueueStorage",
    "JsonFileQueueStorage",
    "OfflineQueue",
    "QueueStorage",
    "QueuedRequest",
]
