"""WebSocket Chat Handler.

Real-time chat operations over Socket.IO:
- join: register this connection as the live endpoint for the user
- send: persist a message, push it to the receiver, ack the sender
- typing / stopTyping: relay indicators to the counterpart

History, the inbox and read flags are served over REST.

Data Consistency:
- Messages are stored in MongoDB before anything is pushed
- The sender ack carries the stored message id plus the client's tempId
- Failed sends are reported to the client with sendError and nothing is stored
"""
import logging
from typing import Any, Dict, Optional

from flask import request

from chat_server.exception.TransientStoreError import TransientStoreError
from chat_server.exception.ValidationError import ValidationError
from chat_server.messaging.models import ChatEvent
from chat_server.messaging.service import MessagingService

logger = logging.getLogger(__name__)


class ChatHandler:
    """Handler for WebSocket chat events."""

    CODE_INVALID_DATA = 'INVALID_DATA'
    CODE_STORE_UNAVAILABLE = 'STORE_UNAVAILABLE'
    CODE_FORBIDDEN = 'FORBIDDEN'
    CODE_UNAUTHORIZED = 'UNAUTHORIZED'
    CODE_SERVER_ERROR = 'SERVER_ERROR'

    def __init__(self, socketio, service: MessagingService, hub):
        """Initialize chat handler.

        Args:
            socketio: Flask-SocketIO instance
            service: messaging service the events are routed to
            hub: WebSocketHub owning the sid -> LiveConnection map
        """
        self.socketio = socketio
        self.service = service
        self.hub = hub

    def register_handlers(self):
        """Register all chat WebSocket event handlers."""

        @self.socketio.on(ChatEvent.JOIN)
        def handle_join(data=None):
            """Register the connection for the authenticated user.

            Data:
                userId (or a bare string): must match the token's user; optional
            """
            connection = self.hub.connection_for(request.sid)
            if connection is None:
                return {'success': False, 'code': self.CODE_UNAUTHORIZED}

            requested = data.get('userId') if isinstance(data, dict) else data
            if requested is not None and str(requested).strip() != connection.user_id:
                logger.warning("WS join refused: sid=%s user=%s asked for %s", connection.sid, connection.user_id, requested)
                connection.push(ChatEvent.ERROR, {
                    'code': self.CODE_FORBIDDEN,
                    'message': 'Cannot join as another user'
                })
                return {'success': False, 'code': self.CODE_FORBIDDEN}

            self.service.join(connection.user_id, connection)
            connection.push(ChatEvent.JOINED, {'userId': connection.user_id})
            return {'success': True, 'userId': connection.user_id}

        @self.socketio.on(ChatEvent.SEND)
        def handle_send(data=None):
            """Handle sending a new message.

            Data:
                receiverId: str - recipient user id
                body: str - message text (`message` accepted as an alias)
                itemRef: str - optional catalog item (`cropId` accepted as an alias)
                tempId: str - client-side temporary id echoed in the ack

            Response Events:
                - messageSent (to sender) - stored message plus tempId
                - messageReceived (to receiver, if online)
                - sendError (to sender, on failure)
            """
            connection = self.hub.connection_for(request.sid)
            if connection is None:
                return {'success': False, 'code': self.CODE_UNAUTHORIZED}

            data = data if isinstance(data, dict) else {}
            temp_id = data.get('tempId') or data.get('temp_id')
            body = data.get('body')
            if body is None:
                body = data.get('message')

            try:
                message = self.service.send(
                    connection.user_id,
                    data.get('receiverId'),
                    body,
                    data.get('itemRef') or data.get('cropId'),
                    origin=connection,
                    ack_extra={'tempId': temp_id} if temp_id else None
                )
            except ValidationError as e:
                return self._send_error(connection, str(e), self.CODE_INVALID_DATA, False, temp_id)
            except TransientStoreError as e:
                logger.error("WS send failed for %s: %s", connection.user_id, e)
                return self._send_error(connection, 'Chat storage temporarily unavailable',
                                        self.CODE_STORE_UNAVAILABLE, True, temp_id)
            except Exception:
                logger.exception("WS send crashed for %s", connection.user_id)
                return self._send_error(connection, 'Server error', self.CODE_SERVER_ERROR, False, temp_id)

            return {'success': True, 'messageId': message.id, 'tempId': temp_id}

        @self.socketio.on(ChatEvent.TYPING)
        def handle_typing(data=None):
            self._relay_typing(data, stop=False)

        @self.socketio.on(ChatEvent.STOP_TYPING)
        def handle_stop_typing(data=None):
            self._relay_typing(data, stop=True)

    def _send_error(self, connection, reason: str, code: str, retryable: bool,
                    temp_id: Optional[str]) -> Dict[str, Any]:
        payload = {'reason': reason, 'code': code, 'retryable': retryable, 'tempId': temp_id}
        connection.push(ChatEvent.SEND_ERROR, payload)
        return dict(payload, success=False)

    def _relay_typing(self, data, stop: bool):
        connection = self.hub.connection_for(request.sid)
        if connection is None:
            return
        receiver_id = data.get('receiverId') if isinstance(data, dict) else data
        try:
            if stop:
                self.service.stop_typing(connection.user_id, receiver_id)
            else:
                self.service.typing(connection.user_id, receiver_id)
        except ValidationError as e:
            connection.push(ChatEvent.ERROR, {'code': self.CODE_INVALID_DATA, 'message': str(e)})


# Singleton instance
_chat_handler: Optional[ChatHandler] = None


def get_chat_handler() -> Optional[ChatHandler]:
    """Get chat handler instance."""
    return _chat_handler


def init_chat_handler(socketio, service: MessagingService, hub) -> ChatHandler:
    """Initialize chat handler with socketio instance."""
    global _chat_handler
    _chat_handler = ChatHandler(socketio, service, hub)
    _chat_handler.register_handlers()
    logger.info("Chat handler initialized")
    return _chat_handler
