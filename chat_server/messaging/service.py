"""Messaging service layer.

Wires the message store, presence registry, delivery engine, conversation
aggregator and read/typing state manager together, and is what the REST
routes and the WebSocket handlers talk to.
"""
import logging
from typing import Optional, Dict, Any, List

from chat_server.exception.NotFoundError import NotFoundError
from chat_server.messaging.aggregator import ConversationAggregator
from chat_server.messaging.delivery import DeliveryEngine
from chat_server.messaging.models import ChatMessage, ConversationSummary
from chat_server.messaging.presence import PresenceRegistry
from chat_server.messaging.read_state import ReadStateManager
from chat_server.messaging.repository import MessageStore, COLLECTION_NAME
from chat_server.repository.directory_repository import UserDirectoryRepository, CatalogRepository
from chat_server.utils.validation import clean_identifier

logger = logging.getLogger(__name__)


class MessagingService:
    """High-level messaging service."""

    def __init__(
        self,
        store: MessageStore,
        presence: Optional[PresenceRegistry] = None,
        users: Optional[UserDirectoryRepository] = None,
        catalog: Optional[CatalogRepository] = None
    ):
        self.store = store
        self.presence = presence or PresenceRegistry()
        self.users = users or UserDirectoryRepository()
        self.catalog = catalog or CatalogRepository()
        self.delivery = DeliveryEngine(self.store, self.presence)
        self.aggregator = ConversationAggregator(self.store)
        self.read_state = ReadStateManager(self.store, self.presence)

    @classmethod
    def from_db(cls, db, ensure_indexes: bool = True) -> 'MessagingService':
        store = MessageStore(db[COLLECTION_NAME])
        if ensure_indexes:
            store.ensure_indexes()
        return cls(store, users=UserDirectoryRepository(db), catalog=CatalogRepository(db))

    # =========================================================================
    # Presence
    # =========================================================================

    def join(self, user_id: str, handle) -> Optional[Any]:
        return self.presence.join(clean_identifier(user_id, 'userId'), handle)

    def leave(self, handle) -> Optional[str]:
        return self.presence.leave(handle)

    def presence_of(self, user_ids: List[str]) -> Dict[str, bool]:
        return {user_id: self.presence.is_online(user_id) for user_id in user_ids}

    # =========================================================================
    # Messages
    # =========================================================================

    def send(self, sender_id: str, receiver_id: str, body: str, item_ref: Optional[str] = None,
             origin=None, ack_extra: Optional[Dict[str, Any]] = None) -> ChatMessage:
        """Realtime send: persist and push to live connections."""
        return self.delivery.send(sender_id, receiver_id, body, item_ref, origin=origin, ack_extra=ack_extra)

    def post_message(self, sender_id: str, receiver_id: str, body: str, item_ref: Optional[str] = None) -> ChatMessage:
        """Non-realtime fallback: persist only, no live pushes."""
        message = self.store.append(sender_id, receiver_id, body, item_ref)
        logger.info("Message %s posted by %s to %s (no live push)", message.id, message.sender_id, message.receiver_id)
        return message

    def history(self, viewer_id: str, counterpart_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        return self.store.history(viewer_id, counterpart_id, limit=limit)

    def get_message(self, viewer_id: str, message_id: str) -> ChatMessage:
        """Single message visible to viewer_id; NotFoundError otherwise."""
        message = self.store.by_id(message_id)
        if message is None or not message.involves(viewer_id):
            raise NotFoundError('Message not found')
        return message

    # =========================================================================
    # Read / typing state
    # =========================================================================

    def open_conversation(self, viewer_id: str, counterpart_id: str) -> Dict[str, Any]:
        return self.read_state.open_conversation(viewer_id, counterpart_id)

    def mark_read(self, viewer_id: str, counterpart_id: str) -> int:
        """Mark every message counterpart -> viewer as read."""
        return self.store.mark_read(counterpart_id, viewer_id)

    def typing(self, sender_id: str, receiver_id: str) -> bool:
        return self.read_state.typing(sender_id, receiver_id)

    def stop_typing(self, sender_id: str, receiver_id: str) -> bool:
        return self.read_state.stop_typing(sender_id, receiver_id)

    # =========================================================================
    # Inbox
    # =========================================================================

    def conversations_for(self, user_id: str) -> List[ConversationSummary]:
        return self.aggregator.conversations_for(user_id)

    def unread_total(self, user_id: str) -> int:
        return self.aggregator.unread_total(user_id)


# Singleton instance
_messaging_service: Optional[MessagingService] = None


def init_messaging_service(db=None, store: Optional[MessageStore] = None) -> MessagingService:
    """Create the process-wide messaging service from a database or a ready store."""
    global _messaging_service
    if store is not None:
        _messaging_service = MessagingService(store)
    else:
        _messaging_service = MessagingService.from_db(db)
    logger.info("Messaging service initialized")
    return _messaging_service


def get_messaging_service() -> MessagingService:
    """Get singleton messaging service instance."""
    if _messaging_service is None:
        raise RuntimeError("Messaging service not initialized - call init_messaging_service() first")
    return _messaging_service


def reset_messaging_service():
    """Forget the singleton (useful for testing)."""
    global _messaging_service
    _messaging_service = None
