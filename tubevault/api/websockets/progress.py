"""
WebSocket push channel for acquisition progress.

Every connected client receives every event. Clients that miss events
recover by polling the acquisition endpoints.
"""

import json
import uuid
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from ...config.logging_config import get_logger

logger = get_logger(__name__)
router = APIRouter()


class ClosedConnectionError(ConnectionError):
    """Send attempted on a socket that is no longer connected."""


class WebSocketObserver:
    """Adapts a WebSocket to the observer interface of the fan-out registry."""

    def __init__(self, websocket: WebSocket, client_id: str):
        self.websocket = websocket
        self.client_id = client_id

    async def send(self, message: Dict[str, Any]) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            raise ClosedConnectionError(f"WebSocket {self.client_id} is not connected")
        await self.websocket.send_json(message)


async def handle_client_message(websocket: WebSocket, raw: str) -> None:
    """Clients only ever ping; anything else is ignored."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return
    if isinstance(message, dict) and message.get("type") == "ping":
        await websocket.send_json({"type": "pong"})


@router.websocket("/ws")
async def progress_endpoint(websocket: WebSocket):
    """Subscribe to progress, batchProgress, download_completed and error events."""
    service = websocket.app.state.service
    registry = service.observers
    client_id = str(uuid.uuid4())

    await websocket.accept()
    await websocket.send_json({"type": "connection", "status": "connected", "clientId": client_id})
    registry.add(client_id, WebSocketObserver(websocket, client_id))
    service.metrics.observers_connected.set(len(registry))

    logger.info(
        "WebSocket client connected",
        extra={"client_id": client_id, "total_connections": len(registry)}
    )

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_client_message(websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        registry.remove(client_id)
        service.metrics.observers_connected.set(len(registry))
        logger.info(
            "WebSocket client disconnected",
            extra={"client_id": client_id, "total_connections": len(registry)}
        )
