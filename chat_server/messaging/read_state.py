"""Read and typing state.

Read flags are persisted through the message store; typing signals are
relayed to the counterpart's live connection and never stored.
"""
import logging
from typing import Any, Dict

from chat_server.messaging.delivery import push_event
from chat_server.messaging.models import ChatEvent
from chat_server.messaging.presence import PresenceRegistry
from chat_server.messaging.repository import MessageStore
from chat_server.utils.validation import clean_participants

logger = logging.getLogger(__name__)


class ReadStateManager:

    def __init__(self, store: MessageStore, presence: PresenceRegistry):
        self.store = store
        self.presence = presence

    def open_conversation(self, viewer_id: str, counterpart_id: str) -> Dict[str, Any]:
        """Mark counterpart -> viewer messages read and return the refreshed history.

        Returns:
            {'marked': int, 'messages': [ChatMessage, ...]}
        """
        marked = self.store.mark_read(counterpart_id, viewer_id)
        messages = self.store.history(viewer_id, counterpart_id)
        if marked:
            logger.info("%s opened conversation with %s, %d message(s) marked read", viewer_id, counterpart_id, marked)
        return {'marked': marked, 'messages': messages}

    def typing(self, sender_id: str, receiver_id: str) -> bool:
        return self._relay(ChatEvent.USER_TYPING, sender_id, receiver_id)

    def stop_typing(self, sender_id: str, receiver_id: str) -> bool:
        return self._relay(ChatEvent.USER_STOPPED_TYPING, sender_id, receiver_id)

    def _relay(self, event: str, sender_id: str, receiver_id: str) -> bool:
        sender_id, receiver_id = clean_participants(sender_id, receiver_id)
        handle = self.presence.lookup(receiver_id)
        delivered = push_event(handle, event, {'userId': sender_id})
        if not delivered:
            logger.debug("%s from %s dropped, %s offline", event, sender_id, receiver_id)
        return delivered
