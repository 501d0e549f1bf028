"""Messaging data models for buyer/farmer chat.

Collections:
- chat_messages: every message ever sent; a conversation is the set of
  messages between two users and is never stored on its own.
"""
from typing import Optional, Dict, Any
from datetime import datetime

from bson import ObjectId

from chat_server.utils.time_utils import to_iso


class ChatEvent:
    """Live-connection event names."""

    # Client -> server
    JOIN = 'join'
    SEND = 'send'
    TYPING = 'typing'
    STOP_TYPING = 'stopTyping'

    # Server -> client
    JOINED = 'joined'
    MESSAGE_RECEIVED = 'messageReceived'
    MESSAGE_SENT = 'messageSent'
    USER_TYPING = 'userTyping'
    USER_STOPPED_TYPING = 'userStoppedTyping'
    SEND_ERROR = 'sendError'
    ERROR = 'error'


class ChatMessage:
    """Chat message document structure.

    Only `is_read` changes after creation.
    """

    def __init__(
        self,
        message_id: ObjectId,
        sender_id: str,
        receiver_id: str,
        body: str,
        created_at: datetime,
        item_ref: Optional[str] = None,
        is_read: bool = False
    ):
        self.message_id = message_id
        self.sender_id = sender_id
        self.receiver_id = receiver_id
        self.body = body
        self.item_ref = item_ref
        self.is_read = is_read
        self.created_at = created_at

    @property
    def id(self) -> str:
        return str(self.message_id)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'senderId': self.sender_id,
            'receiverId': self.receiver_id,
            'body': self.body,
            'itemRef': self.item_ref,
            'isRead': self.is_read,
            'createdAt': to_iso(self.created_at)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.message_id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'body': self.body,
            'item_ref': self.item_ref,
            'is_read': self.is_read,
            'created_at': self.created_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'ChatMessage':
        return cls(
            message_id=doc.get('_id'),
            sender_id=doc.get('sender_id'),
            receiver_id=doc.get('receiver_id'),
            body=doc.get('body'),
            item_ref=doc.get('item_ref'),
            is_read=bool(doc.get('is_read', False)),
            created_at=doc.get('created_at')
        )

    def __eq__(self, other):
        if not isinstance(other, ChatMessage):
            return NotImplemented
        return self.to_db_doc() == other.to_db_doc()

    def __repr__(self):
        return f"ChatMessage(id={self.id}, {self.sender_id}->{self.receiver_id}, read={self.is_read})"


class ConversationSummary:
    """One inbox row: the latest exchange with a counterpart."""

    def __init__(
        self,
        counterpart_id: str,
        last_message_body: str,
        last_message_time: datetime,
        unread_count: int = 0,
        last_message_id: Optional[ObjectId] = None,
        item_ref: Optional[str] = None
    ):
        self.counterpart_id = counterpart_id
        self.last_message_body = last_message_body
        self.last_message_time = last_message_time
        self.unread_count = unread_count
        self.last_message_id = last_message_id
        # Item referenced by the most recent message, if any
        self.item_ref = item_ref

    def to_dict(self) -> Dict[str, Any]:
        return {
            'counterpartId': self.counterpart_id,
            'lastMessageBody': self.last_message_body,
            'lastMessageTime': to_iso(self.last_message_time),
            'unreadCount': self.unread_count,
            'lastMessageId': str(self.last_message_id) if self.last_message_id else None,
            'itemRef': self.item_ref
        }

    def __repr__(self):
        return f"ConversationSummary({self.counterpart_id}, unread={self.unread_count})"
