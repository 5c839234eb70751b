"""
WebSocket Endpoint

Pushes store snapshots to open planner views so every viewer rebuilds its
weekly grid from the same state.
Supports:
- Authentication via JWT token query parameter
- Ping/pong heartbeat
- Subscription to specific event types
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from datetime import datetime, timezone
from typing import Optional
import logging
import json

from app.api.deps import CurrentActor, get_current_actor_ws
from app.services.websocket_manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT access token"),
):
    """
    WebSocket endpoint for live planning updates.

    Connection URL: ws://host/api/v2/ws?token=<jwt_token>

    Message Protocol:
    - Client -> Server:
        - {"type": "ping"} - Heartbeat ping
        - {"type": "subscribe", "events": ["visits.*"]} - Subscribe to events
        - {"type": "unsubscribe", "events": ["visits.*"]} - Unsubscribe from events

    - Server -> Client:
        - {"type": "connected", "actor_id": "..."} - Connection confirmation
        - {"type": "pong", "timestamp": "..."} - Heartbeat response
        - {"type": "visits.snapshot", "data": {"items": [...], "count": 3, "error": null}, "timestamp": "..."}
        - {"type": "error", "message": "..."} - Error message

    Events:
        - visits.snapshot
        - contracts.snapshot
    """
    actor = await get_current_actor_ws(token)

    if not actor:
        logger.warning("WebSocket connection rejected: invalid token")
        await websocket.close(code=4001, reason="Unauthorized")
        return

    await manager.connect(websocket, actor.id)

    try:
        await websocket.send_json({"type": "connected", "actor_id": actor.id, "timestamp": _now()})

        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            message_type = data.get("type")

            if message_type == "ping":
                manager.update_heartbeat(websocket)
                await websocket.send_json({"type": "pong", "timestamp": _now()})

            elif message_type in ("subscribe", "unsubscribe"):
                events = data.get("events", [])
                if not isinstance(events, list):
                    await websocket.send_json({"type": "error", "message": "events must be a list"})
                    continue
                if message_type == "subscribe":
                    current = manager.subscribe(websocket, set(events))
                else:
                    current = manager.unsubscribe(websocket, set(events))
                await websocket.send_json({"type": f"{message_type}d", "events": sorted(current)})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {message_type}"})

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: actor={actor.id}")
    finally:
        manager.disconnect(websocket)


@router.get("/ws/stats")
async def get_websocket_stats(current_actor: CurrentActor):
    """Connection counts, for monitoring."""
    return manager.get_connection_stats()
