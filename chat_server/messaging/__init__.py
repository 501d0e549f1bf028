"""Two-party buyer/farmer messaging.

This module provides:
- Message persistence and history (MessageStore)
- Process-local presence (PresenceRegistry)
- Persist-then-push delivery (DeliveryEngine)
- Inbox aggregation (ConversationAggregator)
- Read flags and typing indicators (ReadStateManager)
"""

from chat_server.messaging.models import ChatMessage, ConversationSummary, ChatEvent
from chat_server.messaging.repository import MessageStore
from chat_server.messaging.presence import PresenceRegistry
from chat_server.messaging.delivery import DeliveryEngine
from chat_server.messaging.aggregator import ConversationAggregator
from chat_server.messaging.read_state import ReadStateManager
from chat_server.messaging.service import (
    MessagingService, get_messaging_service, init_messaging_service, reset_messaging_service
)

__all__ = [
    # Models
    'ChatMessage', 'ConversationSummary', 'ChatEvent',
    # Components
    'MessageStore', 'PresenceRegistry', 'DeliveryEngine',
    'ConversationAggregator', 'ReadStateManager',
    # Service
    'MessagingService', 'get_messaging_service', 'init_messaging_service',
    'reset_messaging_service',
]
