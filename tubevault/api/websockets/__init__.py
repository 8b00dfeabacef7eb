"""WebSocket endpoints."""

from .progress import WebSocketObserver, router as websocket_router

__all__ = ["WebSocketObserver", "websocket_router"]
