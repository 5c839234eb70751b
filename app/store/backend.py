"""
Collection backend with push listeners.

Each backend wraps one SQLAlchemy model ("collection") and owns a
ChangeFeed. Writes commit through a short-lived session and then publish
a full, versioned snapshot to every registered listener. The feed is
in-process: listeners see writes made through backends in this process
only. Rows written by another process appear in the next snapshot
published after a local write.

Listener registration is keyed by a target id. Registering a target that
is still registered is refused with ListenerConflictError, delivered
through the listener's error callback on the next loop iteration.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session_maker
from app.exceptions import DocumentNotFoundError, ListenerConflictError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict], int], None]
ErrorCallback = Callable[[Exception], None]


class ListenerRegistration:
    """Handle returned by ``listen``; ``unsubscribe`` is idempotent."""

    def __init__(self, feed: Optional["ChangeFeed"], target_id: str):
        self._feed = feed
        self.target_id = target_id

    @property
    def active(self) -> bool:
        return self._feed is not None and self._feed.is_registered(self.target_id, self)

    def unsubscribe(self) -> None:
        if self._feed is not None:
            self._feed.remove(self.target_id, self)
            self._feed = None


class _Listener:
    def __init__(self, registration: ListenerRegistration, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.registration = registration
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.last_version = -1
        self.initial_task: Optional[asyncio.Task] = None


class ChangeFeed:
    """
    In-process fan-out of committed snapshots.

    Modelled on the websocket ConnectionManager: a registry of live
    receivers plus a broadcast that drops receivers whose callback fails.
    """

    def __init__(self, collection: str):
        self.collection = collection
        self.version = 0
        self._listeners: dict[str, _Listener] = {}

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def is_registered(self, target_id: str, registration: ListenerRegistration) -> bool:
        listener = self._listeners.get(target_id)
        return listener is not None and listener.registration is registration

    def register(
        self, target_id: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Optional[_Listener]:
        if target_id in self._listeners:
            return None
        registration = ListenerRegistration(self, target_id)
        listener = _Listener(registration, on_snapshot, on_error)
        self._listeners[target_id] = listener
        logger.debug(f"{self.collection}: listener {target_id} registered ({self.listener_count} total)")
        return listener

    def remove(self, target_id: str, registration: ListenerRegistration) -> None:
        listener = self._listeners.get(target_id)
        if listener is None or listener.registration is not registration:
            return
        del self._listeners[target_id]
        if listener.initial_task is not None and not listener.initial_task.done():
            listener.initial_task.cancel()
        logger.debug(f"{self.collection}: listener {target_id} removed ({self.listener_count} left)")

    def deliver(self, listener: _Listener, items: list[dict], version: int) -> None:
        if version <= listener.last_version:
            return
        listener.last_version = version
        listener.on_snapshot(items, version)

    def publish(self, items: list[dict]) -> int:
        self.version += 1
        for target_id, listener in list(self._listeners.items()):
            if self._listeners.get(target_id) is not listener:
                continue
            try:
                self.deliver(listener, items, self.version)
            except Exception as e:
                logger.error(f"{self.collection}: listener {target_id} failed, dropping it: {e}")
                self.remove(target_id, listener.registration)
        return self.version

    def fail(self, error: Exception) -> None:
        for listener in list(self._listeners.values()):
            listener.on_error(error)


class CollectionBackend(Protocol):
    """What a RemoteCollectionStore needs from its remote collection."""

    collection: str

    async def fetch_all(self) -> list[dict]: ...

    async def add(self, data: dict) -> dict: ...

    async def update(self, doc_id: str, data: dict) -> dict: ...

    async def delete(self, doc_id: str) -> None: ...

    def listen(self, target_id: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> ListenerRegistration: ...


class SqlCollectionBackend:
    """CollectionBackend over one SQLAlchemy model."""

    def __init__(self, model: type, session_maker: async_sessionmaker[AsyncSession] = async_session_maker):
        self.model = model
        self.collection = model.__tablename__
        self.feed = ChangeFeed(self.collection)
        self._session_maker = session_maker
        self._columns = {attr.key for attr in sa_inspect(model).mapper.column_attrs}
        self._publish_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    def _to_dict(self, row: Any) -> dict:
        return {key: getattr(row, key) for key in self._columns}

    def _column_values(self, data: dict) -> dict:
        unknown = set(data) - self._columns
        if unknown:
            logger.debug(f"{self.collection}: ignoring unknown fields {sorted(unknown)}")
        return {key: value for key, value in data.items() if key in self._columns}

    async def fetch_all(self) -> list[dict]:
        async with self._session_maker() as session:
            result = await session.execute(select(self.model).order_by(self.model.created_at, self.model.id))
            return [self._to_dict(row) for row in result.scalars().all()]

    async def get(self, doc_id: str) -> Optional[dict]:
        async with self._session_maker() as session:
            row = await session.get(self.model, doc_id)
            return self._to_dict(row) if row is not None else None

    async def add(self, data: dict) -> dict:
        async with self._session_maker() as session:
            row = self.model(**self._column_values(data))
            session.add(row)
            await session.commit()
            await session.refresh(row)
            item = self._to_dict(row)
        await self._publish_latest()
        return item

    async def update(self, doc_id: str, data: dict) -> dict:
        async with self._session_maker() as session:
            row = await session.get(self.model, doc_id)
            if row is None:
                raise DocumentNotFoundError(self.collection, doc_id)
            for key, value in self._column_values(data).items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            item = self._to_dict(row)
        await self._publish_latest()
        return item

    async def delete(self, doc_id: str) -> None:
        async with self._session_maker() as session:
            row = await session.get(self.model, doc_id)
            if row is None:
                raise DocumentNotFoundError(self.collection, doc_id)
            await session.delete(row)
            await session.commit()
        await self._publish_latest()

    async def _publish_latest(self) -> None:
        # Serialized so versions follow commit order
        async with self._publish_lock:
            try:
                items = await self.fetch_all()
            except SQLAlchemyError as e:
                logger.error(f"{self.collection}: snapshot fetch after write failed: {e}")
                self.feed.fail(e)
                return
            self.feed.publish(items)

    def listen(self, target_id: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> ListenerRegistration:
        loop = asyncio.get_running_loop()
        listener = self.feed.register(target_id, on_snapshot, on_error)
        if listener is None:
            logger.warning(f"{self.collection}: refused duplicate listener for {target_id}")
            loop.call_soon(on_error, ListenerConflictError(target_id))
            return ListenerRegistration(None, target_id)

        task = loop.create_task(self._deliver_initial(listener))
        listener.initial_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return listener.registration

    async def _deliver_initial(self, listener: _Listener) -> None:
        version = self.feed.version
        try:
            items = await self.fetch_all()
        except SQLAlchemyError as e:
            logger.error(f"{self.collection}: initial snapshot failed: {e}")
            if listener.registration.active:
                listener.on_error(e)
            return
        if listener.registration.active:
            self.feed.deliver(listener, items, version)
