"""Message store backed by the `chat_messages` MongoDB collection.

Provides:
- append: validate and persist a new message
- history: every message between two users, oldest first
- mark_read: atomic false -> true flip of read flags
- by_id: single message lookup

Driver failures surface as TransientStoreError. Writes are never retried
here; a retry without an idempotency key could insert duplicates.
"""
import logging
from contextlib import contextmanager
from typing import Optional, List

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from config import config
from chat_server.exception.TransientStoreError import TransientStoreError
from chat_server.messaging.models import ChatMessage
from chat_server.utils.threading_util import StripedLock
from chat_server.utils.time_utils import utc_now
from chat_server.utils.validation import (
    clean_participants, clean_identifier, clean_optional_identifier, clean_body
)

logger = logging.getLogger(__name__)

COLLECTION_NAME = 'chat_messages'

# Oldest first, ties broken by insertion order of the ObjectId
HISTORY_SORT = [('created_at', ASCENDING), ('_id', ASCENDING)]
LATEST_FIRST_SORT = [('created_at', DESCENDING), ('_id', DESCENDING)]


def pair_query(user_a: str, user_b: str) -> dict:
    return {
        '$or': [
            {'sender_id': user_a, 'receiver_id': user_b},
            {'sender_id': user_b, 'receiver_id': user_a},
        ]
    }


class MessageStore:
    """Repository for chat messages."""

    def __init__(self, collection, max_body_length: Optional[int] = None):
        self.collection = collection
        self.max_body_length = max_body_length or config.CHAT_MAX_BODY_LENGTH
        self._pair_locks = StripedLock()

    @contextmanager
    def _store_call(self, operation: str):
        try:
            yield
        except PyMongoError as e:
            logger.error("Message store %s failed: %s", operation, e)
            raise TransientStoreError(f"Message store {operation} failed: {e}", operation=operation) from e

    def ensure_indexes(self):
        """Create indexes used by the pair and inbox query paths (idempotent)."""
        with self._store_call('ensure_indexes'):
            self.collection.create_index(
                [('sender_id', ASCENDING), ('receiver_id', ASCENDING), ('created_at', ASCENDING)],
                name='chat_messages_pair_created_at'
            )
            self.collection.create_index(
                [('receiver_id', ASCENDING), ('is_read', ASCENDING)],
                name='chat_messages_receiver_unread'
            )
        logger.info("Ensured chat_messages indexes")

    # =========================================================================
    # Writes
    # =========================================================================

    def append(self, sender_id: str, receiver_id: str, body: str, item_ref: Optional[str] = None) -> ChatMessage:
        """Validate and persist a new message; returns the stored record."""
        sender_id, receiver_id = clean_participants(sender_id, receiver_id)
        body = clean_body(body, self.max_body_length)
        item_ref = clean_optional_identifier(item_ref, 'itemRef')

        message = ChatMessage(
            message_id=ObjectId(),
            sender_id=sender_id,
            receiver_id=receiver_id,
            body=body,
            item_ref=item_ref,
            is_read=False,
            created_at=utc_now()
        )
        with self._store_call('append'):
            self.collection.insert_one(message.to_db_doc())

        logger.debug("Stored message %s from %s to %s", message.id, sender_id, receiver_id)
        return message

    def mark_read(self, from_user_id: str, to_user_id: str) -> int:
        """Flip is_read for every unread message from -> to. Returns the number updated.

        The update is filtered on is_read=False and callers for the same pair
        are serialized in-process, so concurrent callers never double count:
        each document flips at most once.
        """
        from_user_id = clean_identifier(from_user_id, 'fromUserId')
        to_user_id = clean_identifier(to_user_id, 'toUserId')
        with self._pair_locks.for_key((from_user_id, to_user_id)), self._store_call('mark_read'):
            result = self.collection.update_many(
                {'sender_id': from_user_id, 'receiver_id': to_user_id, 'is_read': False},
                {'$set': {'is_read': True}}
            )
        if result.modified_count:
            logger.debug("Marked %d message(s) from %s to %s as read", result.modified_count, from_user_id, to_user_id)
        return result.modified_count

    # =========================================================================
    # Reads
    # =========================================================================

    def history(self, user_a: str, user_b: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """All messages between user_a and user_b in either direction, oldest first.

        With a limit, only the most recent `limit` messages are returned (still oldest first).
        """
        user_a = clean_identifier(user_a, 'userId')
        user_b = clean_identifier(user_b, 'counterpartId')
        query = pair_query(user_a, user_b)

        with self._store_call('history'):
            if limit:
                docs = list(self.collection.find(query).sort(LATEST_FIRST_SORT).limit(limit))
                docs.reverse()
            else:
                docs = list(self.collection.find(query).sort(HISTORY_SORT))
        return [ChatMessage.from_doc(doc) for doc in docs]

    def by_id(self, message_id) -> Optional[ChatMessage]:
        """Get message by ID; None when absent or when the id cannot be an ObjectId."""
        if isinstance(message_id, str):
            try:
                message_id = ObjectId(message_id)
            except (InvalidId, TypeError):
                return None
        if not isinstance(message_id, ObjectId):
            return None
        with self._store_call('by_id'):
            doc = self.collection.find_one({'_id': message_id})
        return ChatMessage.from_doc(doc) if doc else None

    def messages_for(self, user_id: str, projection: Optional[dict] = None):
        """Every message user_id sent or received, most recent first.

        Returned as a list so the caller never holds an open cursor.
        """
        user_id = clean_identifier(user_id, 'userId')
        query = {'$or': [{'sender_id': user_id}, {'receiver_id': user_id}]}
        with self._store_call('messages_for'):
            return list(self.collection.find(query, projection).sort(LATEST_FIRST_SORT))

    def unread_count(self, to_user_id: str, from_user_id: Optional[str] = None) -> int:
        to_user_id = clean_identifier(to_user_id, 'userId')
        query = {'receiver_id': to_user_id, 'is_read': False}
        if from_user_id is not None:
            query['sender_id'] = clean_identifier(from_user_id, 'counterpartId')
        with self._store_call('unread_count'):
            return self.collection.count_documents(query)
