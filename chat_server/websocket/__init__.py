"""WebSocket module for real-time chat.

This module provides:
- Centralized WebSocket Hub (connection auth and lifecycle)
- Live connection handles and the outbound dispatcher
- The chat event handler
"""

from chat_server.websocket.connection import LiveConnection, OutboundDispatcher
from chat_server.websocket.hub import WebSocketHub, get_websocket_hub, init_websocket_hub

__all__ = ['LiveConnection', 'OutboundDispatcher', 'WebSocketHub', 'get_websocket_hub', 'init_websocket_hub']
