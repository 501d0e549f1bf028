"""Chat REST API routes.

REST serves initial loads and clients without a live connection:
- GET  /api/chat/conversations - inbox with unread counts
- GET  /api/chat/<user_id> - history with one counterpart (?open=true marks it read)
- PUT  /api/chat/mark-read/<user_id> - mark a counterpart's messages read
- POST /api/chat - store a message without live delivery
- GET  /api/chat/messages/<message_id> - single message, participants only
- GET  /api/chat/presence?user_ids=a,b - live presence

Live delivery goes through the WebSocket events (join, send, typing,
stopTyping) handled in chat_server.websocket.handlers.chat_handler.
"""
import logging
from typing import List

from flask import Blueprint, request

from config import config
from chat_server.messaging.models import ChatMessage
from chat_server.messaging.service import get_messaging_service
from chat_server.utils.decorators import handle_errors, require_auth
from chat_server.utils.helpers import respond_success, parse_bool
from chat_server.utils.validation import clean_identifier, parse_limit

logger = logging.getLogger(__name__)

# Blueprint
chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


# =============================================================================
# Helper Functions
# =============================================================================

def _serialize_messages(messages: List[ChatMessage]) -> list:
    """Messages as API dicts, with sender, receiver and catalog info attached where known.

    Live socket pushes stay lean; only REST payloads are enriched.
    """
    service = get_messaging_service()
    items = service.catalog.describe_many(m.item_ref for m in messages)
    people = service.users.describe_many(
        {m.sender_id for m in messages} | {m.receiver_id for m in messages}
    )
    result = []
    for message in messages:
        data = message.to_dict()
        if message.sender_id in people:
            data['sender'] = people[message.sender_id]
        if message.receiver_id in people:
            data['receiver'] = people[message.receiver_id]
        if message.item_ref and message.item_ref in items:
            data['item'] = items[message.item_ref]
        result.append(data)
    return result


def _request_json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# =============================================================================
# Inbox
# =============================================================================

@chat_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    """Conversations of the current user, most recent activity first.

    Response:
        {
            "success": true,
            "count": 2,
            "data": [{"counterpartId", "lastMessageBody", "lastMessageTime",
                      "unreadCount", "counterpart"?}, ...],
            "totalUnread": 3
        }
    """
    user_id = auth_payload['user_id']
    service = get_messaging_service()

    summaries = service.conversations_for(user_id)
    people = service.users.describe_many(s.counterpart_id for s in summaries)

    data = []
    for summary in summaries:
        item = summary.to_dict()
        if summary.counterpart_id in people:
            item['counterpart'] = people[summary.counterpart_id]
        data.append(item)

    logger.debug("Inbox for %s: %d conversation(s)", user_id, len(data))
    return respond_success({
        'count': len(data),
        'data': data,
        'totalUnread': sum(s.unread_count for s in summaries)
    })


@chat_bp.route('/presence', methods=['GET'])
@handle_errors
@require_auth
def get_presence(auth_payload):
    """Online status for a comma separated `user_ids` list."""
    raw = request.args.get('user_ids', '')
    user_ids = [clean_identifier(u, 'user_ids') for u in raw.split(',') if u.strip()]
    return respond_success({'presence': get_messaging_service().presence_of(user_ids)})


# =============================================================================
# Messages
# =============================================================================

@chat_bp.route('/messages/<message_id>', methods=['GET'])
@handle_errors
@require_auth
def get_message(message_id, auth_payload):
    message = get_messaging_service().get_message(auth_payload['user_id'], message_id)
    return respond_success({'data': _serialize_messages([message])[0]})


@chat_bp.route('', methods=['POST'])
@handle_errors
@require_auth
def post_message(auth_payload):
    """Store a message without pushing it to live connections.

    Body:
        receiverId: str
        body: str (legacy: message)
        itemRef: str, optional (legacy: cropId)
    """
    data = _request_json()
    body = data.get('body')
    if body is None:
        body = data.get('message')

    message = get_messaging_service().post_message(
        auth_payload['user_id'],
        data.get('receiverId'),
        body,
        data.get('itemRef') or data.get('cropId')
    )
    return respond_success({'data': _serialize_messages([message])[0]}, status=201)


@chat_bp.route('/mark-read/<user_id>', methods=['PUT'])
@handle_errors
@require_auth
def mark_read(user_id, auth_payload):
    """Mark every message from user_id to the caller as read."""
    modified = get_messaging_service().mark_read(auth_payload['user_id'], user_id)
    return respond_success({'modifiedCount': modified})


@chat_bp.route('/<user_id>', methods=['GET'])
@handle_errors
@require_auth
def get_history(user_id, auth_payload):
    """Messages between the caller and user_id, oldest first.

    Query Params:
        open: bool - mark the counterpart's messages read first (opening the conversation)
        limit: int - only the most recent N messages
    """
    viewer_id = auth_payload['user_id']
    service = get_messaging_service()
    limit = parse_limit(request.args.get('limit'), config.CHAT_HISTORY_MAX_LIMIT)

    payload = {}
    if parse_bool(request.args.get('open')):
        opened = service.open_conversation(viewer_id, user_id)
        payload['marked'] = opened['marked']
        messages = opened['messages']
        if limit:
            messages = messages[-limit:]
    else:
        messages = service.history(viewer_id, user_id, limit=limit)

    data = _serialize_messages(messages)
    payload.update({'count': len(data), 'data': data})
    return respond_success(payload)
