"""Tests for the planner WebSocket connection manager."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi import WebSocketDisconnect

from app.services.websocket_manager import ConnectionManager, forward_snapshots
from app.store.collection_store import SnapshotStream, StoreSnapshot


def _socket():
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    return websocket


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self):
        manager = ConnectionManager()
        first, second = _socket(), _socket()
        await manager.connect(first, "planner-1")
        await manager.connect(second, "planner-1")

        assert manager.get_connection_stats() == {"total_connections": 2, "unique_actors": 1}
        manager.disconnect(first)
        manager.disconnect(second)
        assert manager.get_connection_stats() == {"total_connections": 0, "unique_actors": 0}

    @pytest.mark.asyncio
    async def test_broadcast_respects_subscriptions(self):
        manager = ConnectionManager()
        everything, contracts_only = _socket(), _socket()
        await manager.connect(everything, "planner-1")
        await manager.connect(contracts_only, "planner-2")
        manager.subscribe(contracts_only, {"contracts.*"})

        sent = await manager.broadcast_event("visits.snapshot", {"items": [], "count": 0, "error": None})

        assert sent == 1
        message = everything.send_json.call_args.args[0]
        assert message["type"] == "visits.snapshot"
        contracts_only.send_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_dead_connections_are_dropped(self):
        manager = ConnectionManager()
        dead = _socket()
        dead.send_json.side_effect = RuntimeError("socket closed")
        await manager.connect(dead, "planner-1")

        assert await manager.broadcast_event("visits.snapshot", {}) == 0
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        manager = ConnectionManager()
        websocket = _socket()
        await manager.connect(websocket, "planner-1")

        manager.subscribe(websocket, {"visits.*", "contracts.*"})
        assert manager.unsubscribe(websocket, {"visits.*"}) == {"contracts.*"}


class TestForwardSnapshots:
    @pytest.mark.asyncio
    async def test_dropped_viewer_does_not_stop_the_relay(self):
        manager = ConnectionManager()
        dropped, healthy = _socket(), _socket()
        dropped.send_json.side_effect = WebSocketDisconnect(code=1006)
        await manager.connect(dropped, "planner-1")
        await manager.connect(healthy, "planner-2")

        stream = SnapshotStream("visits")
        stream.push(StoreSnapshot(({"id": "visit-doc-1"},)))
        stream.push(StoreSnapshot(({"id": "visit-doc-1"}, {"id": "visit-doc-2"})))
        stream.close()

        await forward_snapshots("visits", stream, manager)

        assert healthy.send_json.await_count == 2
        assert healthy.send_json.call_args.args[0]["data"]["count"] == 2
        assert manager.total_connections == 1

    @pytest.mark.asyncio
    async def test_failed_broadcast_is_skipped(self):
        target = MagicMock()
        target.broadcast_event = AsyncMock(side_effect=[RuntimeError("encoder failed"), 1])

        stream = SnapshotStream("contracts")
        stream.push(StoreSnapshot(()))
        stream.push(StoreSnapshot(()))
        stream.close()

        await forward_snapshots("contracts", stream, target)

        assert target.broadcast_event.await_count == 2
