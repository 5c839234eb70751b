"""
WebSocket Connection Manager

Pushes store snapshots to connected planner viewers so every open
weekly grid rebuilds from the same state.
Supports:
- Broadcasting to all connected viewers
- Per-connection event subscriptions ("visits.*", "contracts.snapshot")
- Connection heartbeat tracking
"""

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from typing import TYPE_CHECKING, Dict, Set, Optional
from datetime import datetime, timezone
from fnmatch import fnmatch
import logging
import asyncio

if TYPE_CHECKING:
    from app.store.collection_store import SnapshotStream

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """
    Tracks viewer connections by actor id (one actor may have several tabs)
    and fans events out to the connections subscribed to them.
    """

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}
        self._websocket_to_actor: Dict[WebSocket, str] = {}
        # Empty set means every event
        self._subscriptions: Dict[WebSocket, Set[str]] = {}
        self._heartbeats: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, actor_id: str) -> None:
        await websocket.accept()

        async with self._lock:
            self._connections.setdefault(actor_id, set()).add(websocket)
            self._websocket_to_actor[websocket] = actor_id
            self._subscriptions[websocket] = set()
            self._heartbeats[websocket] = datetime.now(timezone.utc)

        logger.info(f"WebSocket connected: actor={actor_id}, total_connections={self.total_connections}")

    def disconnect(self, websocket: WebSocket) -> None:
        actor_id = self._websocket_to_actor.pop(websocket, None)
        if actor_id is not None and actor_id in self._connections:
            self._connections[actor_id].discard(websocket)
            if not self._connections[actor_id]:
                del self._connections[actor_id]
        self._subscriptions.pop(websocket, None)
        self._heartbeats.pop(websocket, None)

        logger.info(f"WebSocket disconnected: actor={actor_id}, total_connections={self.total_connections}")

    def update_heartbeat(self, websocket: WebSocket) -> None:
        self._heartbeats[websocket] = datetime.now(timezone.utc)

    def subscribe(self, websocket: WebSocket, patterns: Set[str]) -> Set[str]:
        current = self._subscriptions.setdefault(websocket, set())
        current.update(patterns)
        return set(current)

    def unsubscribe(self, websocket: WebSocket, patterns: Set[str]) -> Set[str]:
        current = self._subscriptions.setdefault(websocket, set())
        current.difference_update(patterns)
        return set(current)

    def _wants(self, websocket: WebSocket, event_type: str) -> bool:
        patterns = self._subscriptions.get(websocket)
        return not patterns or any(fnmatch(event_type, pattern) for pattern in patterns)

    @property
    def total_connections(self) -> int:
        return len(self._websocket_to_actor)

    async def broadcast_event(self, event_type: str, data: dict) -> int:
        """
        Send a typed event to every interested connection.

        Returns:
            Number of connections the message was sent to
        """
        message = {
            "type": event_type,
            "data": jsonable_encoder(data),
            "timestamp": _now(),
        }

        sent_count = 0
        dead_connections = []
        for websocket in list(self._websocket_to_actor):
            if not self._wants(websocket, event_type):
                continue
            try:
                await websocket.send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Failed to send {event_type} to {self._websocket_to_actor.get(websocket)}: {e}")
                dead_connections.append(websocket)

        for websocket in dead_connections:
            self.disconnect(websocket)

        logger.debug(f"{event_type} sent to {sent_count} connections")
        return sent_count

    def get_connection_stats(self) -> dict:
        return {
            "total_connections": self.total_connections,
            "unique_actors": len(self._connections),
        }


async def forward_snapshots(collection: str, stream: "SnapshotStream", target: Optional[ConnectionManager] = None) -> None:
    """Relay every snapshot of a store stream as ``<collection>.snapshot``."""
    target = target or manager
    async for snapshot in stream:
        try:
            await target.broadcast_event(
                f"{collection}.snapshot",
                {"items": list(snapshot.items), "count": len(snapshot.items), "error": snapshot.error},
            )
        except Exception:
            logger.exception(f"Failed to relay {collection} snapshot")
    logger.debug(f"{collection} snapshot stream closed")


# Global manager instance
manager = ConnectionManager()
