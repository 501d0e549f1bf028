"""Delivery engine: persist a message, then fan it out to live connections.

Persistence is the only step that has to succeed. Pushes are best-effort:
an offline receiver or a closed connection is a delivery miss, logged and
otherwise ignored, since the message is already retrievable through history.
"""
import logging
from typing import Any, Dict, Optional

from chat_server.messaging.models import ChatEvent, ChatMessage
from chat_server.messaging.presence import PresenceRegistry
from chat_server.messaging.repository import MessageStore
from chat_server.utils.threading_util import StripedLock

logger = logging.getLogger(__name__)


def push_event(handle: Any, event: str, payload: Dict[str, Any]) -> bool:
    """Push to a connection handle if there is one. Returns True if queued."""
    if handle is None:
        return False
    if getattr(handle, 'closed', False):
        return False
    return bool(handle.push(event, payload))


class DeliveryEngine:
    """Accepts send requests and routes them store -> receiver -> sender ack."""

    def __init__(self, store: MessageStore, presence: PresenceRegistry):
        self.store = store
        self.presence = presence
        self._sender_locks = StripedLock()

    def send(
        self,
        sender_id: str,
        receiver_id: str,
        body: str,
        item_ref: Optional[str] = None,
        origin: Any = None,
        ack_extra: Optional[Dict[str, Any]] = None
    ) -> ChatMessage:
        """Persist and deliver a message.

        Args:
            sender_id: authenticated sender
            receiver_id: recipient user id
            body: message text (trimmed before storing)
            item_ref: optional catalog item the message is about
            origin: connection the request arrived on; also receives the ack
            ack_extra: fields merged into the sender ack only (e.g. client tempId)

        Raises:
            ValidationError: request rejected, nothing stored
            TransientStoreError: storage failed, nothing delivered
        """
        # One sender's messages reach the store in the order send() was called
        with self._sender_locks.for_key(str(sender_id)):
            message = self.store.append(sender_id, receiver_id, body, item_ref)

        payload = message.to_dict()

        receiver_handle = self.presence.lookup(message.receiver_id)
        if push_event(receiver_handle, ChatEvent.MESSAGE_RECEIVED, payload):
            logger.debug("Message %s pushed to %s", message.id, message.receiver_id)
        else:
            logger.debug("Delivery miss: %s offline, message %s waits in store", message.receiver_id, message.id)

        ack = dict(payload, **ack_extra) if ack_extra else payload
        sender_handle = self.presence.lookup(message.sender_id)
        acked = push_event(sender_handle, ChatEvent.MESSAGE_SENT, ack)
        if origin is not None and origin is not sender_handle:
            acked = push_event(origin, ChatEvent.MESSAGE_SENT, ack) or acked
        if not acked:
            logger.debug("No live connection for sender %s, ack for %s skipped", message.sender_id, message.id)

        logger.info("Message %s sent by %s to %s", message.id, message.sender_id, message.receiver_id)
        return message
