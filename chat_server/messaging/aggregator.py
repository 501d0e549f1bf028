"""Conversation aggregator: the inbox view.

Recomputed from the message store on every call, so it always reflects
read flags flipped moments earlier. The grouping pass runs in-process over
one indexed query (sender or receiver = user); its cost grows linearly with
the number of messages the user has exchanged, which is the scaling limit
of this view.
"""
import logging
from typing import List

from chat_server.messaging.models import ConversationSummary
from chat_server.messaging.repository import MessageStore

logger = logging.getLogger(__name__)

_INBOX_PROJECTION = {
    'sender_id': 1,
    'receiver_id': 1,
    'body': 1,
    'item_ref': 1,
    'is_read': 1,
    'created_at': 1,
}


class ConversationAggregator:
    """Derives per-user conversation summaries."""

    def __init__(self, store: MessageStore):
        self.store = store

    def conversations_for(self, user_id: str) -> List[ConversationSummary]:
        """Counterparts of user_id with last message and unread count, newest first."""
        docs = self.store.messages_for(user_id, projection=_INBOX_PROJECTION)
        user_id = user_id.strip()

        summaries = {}
        # docs arrive newest first, so the first doc per counterpart is its last message
        for doc in docs:
            sender = doc.get('sender_id')
            counterpart = doc.get('receiver_id') if sender == user_id else sender
            summary = summaries.get(counterpart)
            if summary is None:
                summary = summaries[counterpart] = ConversationSummary(
                    counterpart_id=counterpart,
                    last_message_body=doc.get('body'),
                    last_message_time=doc.get('created_at'),
                    unread_count=0,
                    last_message_id=doc.get('_id'),
                    item_ref=doc.get('item_ref')
                )
            if doc.get('receiver_id') == user_id and not doc.get('is_read', False):
                summary.unread_count += 1

        result = list(summaries.values())
        result.sort(key=lambda s: (s.last_message_time, s.last_message_id), reverse=True)
        logger.debug("Aggregated %d conversation(s) for %s from %d message(s)", len(result), user_id, len(docs))
        return result

    def unread_total(self, user_id: str) -> int:
        """Unread messages addressed to user_id across all conversations."""
        return self.store.unread_count(user_id)
