"""Centralized WebSocket Hub.

Authenticates Socket.IO connections, owns the sid -> LiveConnection map and
the outbound dispatcher, and hands chat events to the chat handler.
"""
import logging
import threading
from typing import Dict, Optional

from flask import Flask, request
from flask_socketio import SocketIO

from config import config
from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.messaging.service import MessagingService
from chat_server.security.authentication import AuthSecurity, extract_bearer
from chat_server.websocket.connection import LiveConnection, OutboundDispatcher

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Centralized WebSocket Hub for real-time chat."""

    def __init__(self, socketio: SocketIO = None):
        self.socketio = socketio
        self.service: Optional[MessagingService] = None
        self.dispatcher: Optional[OutboundDispatcher] = None
        self.connections: Dict[str, LiveConnection] = {}
        self._connections_lock = threading.Lock()
        self._initialized = False
        self._chat_handler = None

    def init_app(self, app: Flask, socketio: SocketIO, service: MessagingService, start_dispatcher: bool = True):
        """Initialize the WebSocket hub.

        With start_dispatcher=False connections flush inline on the calling
        thread instead of through the background dispatcher.
        """
        logger.debug(f"WS_HUB: init app={app.name}, mode={getattr(socketio, 'async_mode', '?')}")

        self.socketio = socketio
        self.app = app
        self.service = service

        if start_dispatcher:
            self.dispatcher = OutboundDispatcher()
            self.dispatcher.start()

        self._register_handlers()
        self._init_chat_handler()

        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _init_chat_handler(self):
        from chat_server.websocket.handlers.chat_handler import init_chat_handler
        self._chat_handler = init_chat_handler(self.socketio, self.service, self)

    def _register_handlers(self):
        """Register connection lifecycle handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.error(f"WS error: {e}")

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Handle new WebSocket connection."""
            socket_id = getattr(request, 'sid', None)
            logger.debug(f"WS connect: sid={socket_id}, ip={request.remote_addr}")

            # Get token from auth data, headers or query string
            token = None
            if auth and isinstance(auth, dict):
                token = auth.get('token')
            if not token:
                token = extract_bearer(request.headers.get('Authorization'))
            if not token:
                token = request.args.get('token')

            identity = self._authenticate(token)
            if not identity:
                logger.warning(f"WS auth failed: sid={socket_id}")
                return False

            connection = LiveConnection(
                socket_id,
                self.socketio.emit,
                dispatcher=self.dispatcher,
                max_pending=config.CHAT_OUTBOUND_QUEUE_SIZE,
                user_id=identity['user_id'],
                role=identity.get('role')
            )
            with self._connections_lock:
                self.connections[socket_id] = connection

            logger.info(f"WS connected: user={identity['user_id']}, sid={socket_id}")
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            """Handle WebSocket disconnection."""
            socket_id = request.sid
            with self._connections_lock:
                connection = self.connections.pop(socket_id, None)
            if connection is None:
                return

            # Closed first: a join racing this disconnect then refuses the handle
            connection.close()
            user_id = self.service.leave(connection)
            if user_id:
                logger.debug(f"WS offline: user={user_id}, sid={socket_id}")
            else:
                logger.debug(f"WS disconnected: sid={socket_id} (superseded or never joined)")

    def _authenticate(self, token: Optional[str]) -> Optional[Dict]:
        """Authenticate WebSocket connection."""
        if not token:
            return None
        try:
            return AuthSecurity.identity(token)
        except UnauthorizedError as e:
            logger.debug(f"WS auth error: {e}")
            return None

    def connection_for(self, socket_id: Optional[str] = None) -> Optional[LiveConnection]:
        sid = socket_id or request.sid
        with self._connections_lock:
            return self.connections.get(sid)

    def shutdown(self):
        if self.dispatcher is not None:
            self.dispatcher.stop()
            self.dispatcher = None


# Singleton instance
_hub_instance: Optional[WebSocketHub] = None


def get_websocket_hub() -> WebSocketHub:
    """Get WebSocket hub singleton."""
    global _hub_instance
    if _hub_instance is None:
        _hub_instance = WebSocketHub()
    return _hub_instance


def init_websocket_hub(app: Flask, socketio: SocketIO, service: MessagingService,
                       start_dispatcher: bool = True) -> WebSocketHub:
    """Initialize a fresh WebSocket hub for this app and make it the singleton."""
    global _hub_instance
    if _hub_instance is not None:
        _hub_instance.shutdown()
    _hub_instance = WebSocketHub()
    _hub_instance.init_app(app, socketio, service, start_dispatcher=start_dispatcher)
    return _hub_instance
