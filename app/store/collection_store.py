"""
Remote Collection Store.

An in-memory mirror of one backend collection kept current by a push
subscription, plus create/update/delete against the same collection.

Lifecycle (``SubscriptionState``)::

    IDLE --subscribe()--> SUBSCRIBING --first snapshot--> ACTIVE
    ACTIVE/SUBSCRIBING --subscribe()--> TEARING_DOWN --debounce--> SUBSCRIBING
    any --dispose()--> DISPOSED

At most one backend registration is live per store. A second
``subscribe()`` tears the live one down and re-registers after a
cancellable debounce timer. Every backend callback is tagged with the
generation that registered it; callbacks from an older generation, or
arriving after ``dispose()``, are discarded without touching state.

Reads come in two flavours: ``items`` is the last delivered snapshot,
``current_items()`` reads the eager cursor that writes update as soon as
the backend acknowledges them (read-your-write inside one flow).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.exceptions import BackendError, ListenerConflictError, SchedulingError
from app.middleware.correlation import get_actor_id
from app.store.backend import CollectionBackend, ListenerRegistration

logger = logging.getLogger(__name__)

# Transport failures a write reports as an error string instead of raising
WRITE_ERRORS = (BackendError, SQLAlchemyError, OSError)

SNAPSHOT_STREAM_MAXSIZE = 64


class SubscriptionState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    TEARING_DOWN = "tearing_down"
    DISPOSED = "disposed"


class StoreDisposedError(SchedulingError):
    status_code = 503

    def __init__(self, name: str):
        super().__init__(f"Store {name} has been disposed")


@dataclass(frozen=True)
class StoreSnapshot:
    items: tuple[dict, ...]
    error: Optional[str] = None


@dataclass
class StoreResult:
    success: bool
    item: Optional[dict] = None
    error: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def drop_none(data: dict) -> dict:
    """None stands for "not provided" and is never sent to the backend."""
    return {key: value for key, value in data.items() if value is not None}


_CLOSED = object()


class SnapshotStream:
    """
    Async iterator over the snapshots delivered to one ``subscribe()`` call.

    Bounded; when a consumer falls behind the oldest pending snapshot is
    dropped, later ones always win.
    """

    def __init__(self, name: str, maxsize: int = SNAPSHOT_STREAM_MAXSIZE):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self.closed = False

    def push(self, snapshot: StoreSnapshot) -> None:
        if self.closed:
            return
        if self._queue.qsize() >= self._maxsize:
            self._queue.get_nowait()
            logger.debug(f"{self.name}: slow snapshot consumer, dropped oldest snapshot")
        self._queue.put_nowait(snapshot)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StoreSnapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def next(self, timeout: Optional[float] = None) -> StoreSnapshot:
        return await asyncio.wait_for(self.__anext__(), timeout)


class RemoteCollectionStore:
    """Mirror of one remote collection. Subclasses add entity semantics."""

    immutable_fields: frozenset[str] = frozenset({"id", "created_at", "created_by"})

    def __init__(
        self,
        backend: CollectionBackend,
        *,
        name: Optional[str] = None,
        target_id: Optional[str] = None,
        debounce_seconds: Optional[float] = None,
    ):
        self.backend = backend
        self.name = name or backend.collection
        self.target_id = target_id or self.name
        self.debounce_seconds = (
            settings.subscription_debounce_seconds if debounce_seconds is None else debounce_seconds
        )

        self.state = SubscriptionState.IDLE
        self.error: Optional[str] = None
        self._registration: Optional[ListenerRegistration] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._version = -1
        self._streams: list[SnapshotStream] = []
        self._listeners: list[Callable[[StoreSnapshot], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._ready = asyncio.Event()

        self._items: tuple[dict, ...] = ()
        self._cursor: dict[str, dict] = {}

    # Filtering hooks

    def accepts(self, item: dict) -> bool:
        return True

    def transform(self, item: dict) -> dict:
        return item

    # Reads

    @property
    def items(self) -> list[dict]:
        return list(self._items)

    @property
    def subscription_count(self) -> int:
        return 1 if self._registration is not None and self._registration.active else 0

    def current_items(self) -> list[dict]:
        return [item for item in self._cursor.values() if self.accepts(item)]

    def get(self, doc_id: str) -> Optional[dict]:
        return self._cursor.get(doc_id)

    def find(self, predicate: Callable[[dict], bool]) -> list[dict]:
        return [item for item in self.current_items() if predicate(item)]

    def add_listener(self, callback: Callable[[StoreSnapshot], None]) -> Callable[[], None]:
        """Register a synchronous snapshot callback; returns the remover."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Wait for the first delivered snapshot."""
        await asyncio.wait_for(self._ready.wait(), timeout)

    # Subscription lifecycle

    def subscribe(self) -> SnapshotStream:
        self._ensure_live()
        stream = SnapshotStream(self.name)

        if self.state is SubscriptionState.IDLE:
            for previous in self._streams:
                previous.close()
            self._streams = [stream]
            self._start_subscription()
            return stream

        logger.debug(f"{self.name}: subscribe() while {self.state.value}, re-subscribing after debounce")
        self._teardown()
        for previous in self._streams:
            previous.close()
        self._streams = [stream]
        self.state = SubscriptionState.TEARING_DOWN
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._start_subscription)
        return stream

    def dispose(self) -> None:
        if self.state is SubscriptionState.DISPOSED:
            return
        self._teardown()
        self.state = SubscriptionState.DISPOSED
        for stream in self._streams:
            stream.close()
        self._streams = []
        self._listeners = []
        for task in list(self._tasks):
            task.cancel()
        logger.debug(f"{self.name}: disposed")

    def _ensure_live(self) -> None:
        if self.state is SubscriptionState.DISPOSED:
            raise StoreDisposedError(self.name)

    def _teardown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._registration is not None:
            self._registration.unsubscribe()
            self._registration = None
        # Invalidate callbacks from the torn down registration
        self._generation += 1

    def _start_subscription(self) -> None:
        self._timer = None
        if self.state is SubscriptionState.DISPOSED:
            return
        self._generation += 1
        generation = self._generation
        # Versions are only ordered within one registration
        self._version = -1
        self.state = SubscriptionState.SUBSCRIBING
        self._registration = self.backend.listen(
            self.target_id,
            partial(self._on_snapshot, generation),
            partial(self._on_error, generation),
        )

    def _is_current(self, generation: int) -> bool:
        return self.state is not SubscriptionState.DISPOSED and generation == self._generation

    def _on_snapshot(self, generation: int, items: list[dict], version: int) -> None:
        if not self._is_current(generation):
            logger.debug(f"{self.name}: discarding late snapshot v{version}")
            return
        if version <= self._version:
            return
        self._version = version
        self.state = SubscriptionState.ACTIVE
        self.error = None
        self._apply(items, None)

    def _on_error(self, generation: int, error: Exception) -> None:
        if not self._is_current(generation):
            return
        self._teardown()
        self.state = SubscriptionState.IDLE
        self.error = str(error)

        if isinstance(error, ListenerConflictError):
            logger.warning(f"{self.name}: {error}; falling back to one-shot fetch")
            task = asyncio.get_running_loop().create_task(self._fallback_fetch(self._generation, self.error))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        logger.error(f"{self.name}: subscription failed: {error}")
        self._apply(list(self._items), self.error)

    async def _fallback_fetch(self, generation: int, error: str) -> None:
        try:
            items = await self.backend.fetch_all()
        except WRITE_ERRORS as e:
            logger.error(f"{self.name}: fallback fetch failed: {e}")
            if self._is_current(generation):
                self.error = f"{error}; fallback fetch failed: {e}"
                self._apply(list(self._items), self.error)
            return
        if self._is_current(generation):
            self._apply(items, error)

    def _apply(self, items: Iterable[dict], error: Optional[str]) -> None:
        mirrored = [self.transform(item) for item in items]
        self._cursor = {item["id"]: item for item in mirrored}
        self._items = tuple(item for item in mirrored if self.accepts(item))
        snapshot = StoreSnapshot(self._items, error)

        for stream in self._streams:
            stream.push(snapshot)
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"{self.name}: snapshot listener failed")
        self._ready.set()

    async def refresh(self) -> list[dict]:
        """One-shot fetch outside the subscription, delivered as a snapshot."""
        self._ensure_live()
        items = await self.backend.fetch_all()
        if self.state is not SubscriptionState.DISPOSED:
            self._apply(items, self.error)
        return self.current_items()

    # Writes

    def _upsert_cursor(self, item: dict) -> None:
        if self.state is SubscriptionState.DISPOSED:
            return
        self._cursor[item["id"]] = self.transform(item)

    async def create(self, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        self._ensure_live()
        actor = performed_by or get_actor_id()
        now = utcnow()
        payload = drop_none(data)
        payload.pop("id", None)
        payload.update(created_by=actor, created_at=now, updated_at=now)
        try:
            item = await self.backend.add(payload)
        except WRITE_ERRORS as e:
            logger.error(f"{self.name}: create failed: {e}")
            return StoreResult(success=False, error=str(e))
        self._upsert_cursor(item)
        logger.info(f"{self.name}: created {item['id']}")
        return StoreResult(success=True, item=item)

    async def update(self, doc_id: str, data: dict, performed_by: Optional[str] = None) -> StoreResult:
        self._ensure_live()
        payload = {key: value for key, value in drop_none(data).items() if key not in self.immutable_fields}
        payload.update(updated_by=performed_by or get_actor_id(), updated_at=utcnow())
        try:
            item = await self.backend.update(doc_id, payload)
        except WRITE_ERRORS as e:
            logger.error(f"{self.name}: update of {doc_id} failed: {e}")
            return StoreResult(success=False, error=str(e))
        self._upsert_cursor(item)
        return StoreResult(success=True, item=item)

    async def delete(self, doc_id: str) -> StoreResult:
        self._ensure_live()
        try:
            await self.backend.delete(doc_id)
        except WRITE_ERRORS as e:
            logger.error(f"{self.name}: delete of {doc_id} failed: {e}")
            return StoreResult(success=False, error=str(e))
        if self.state is not SubscriptionState.DISPOSED:
            self._cursor.pop(doc_id, None)
        return StoreResult(success=True)


def index_by(items: Iterable[dict], key: str) -> dict[Any, dict]:
    return {item[key]: item for item in items if item.get(key) is not None}
