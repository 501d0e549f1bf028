"""Input validation for chat operations.

Every helper either returns the cleaned value or raises ValidationError,
so callers can chain them without checking return tuples.
"""
import re
from typing import Any, Optional

from chat_server.exception.ValidationError import ValidationError

# Opaque identifiers issued by the identity provider / catalog.
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_\-.:@]{1,128}$')


def clean_identifier(value: Any, field: str) -> str:
    """Return a stripped identifier or raise ValidationError if missing/malformed."""
    if value is None:
        raise ValidationError(f'{field} is required.', field=field)
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string.', field=field)
    value = value.strip()
    if not value:
        raise ValidationError(f'{field} is required.', field=field)
    if not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(f'{field} is malformed.', field=field)
    return value


def clean_optional_identifier(value: Any, field: str) -> Optional[str]:
    """Like clean_identifier but treats None/blank as absent."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return clean_identifier(value, field)


def clean_body(value: Any, max_length: int) -> str:
    if value is None or not isinstance(value, str):
        raise ValidationError('Message cannot be empty', field='body')
    body = value.strip()
    if not body:
        raise ValidationError('Message cannot be empty', field='body')
    if len(body) > max_length:
        raise ValidationError(f'Message cannot exceed {max_length} characters', field='body')
    return body


def clean_participants(sender_id: Any, receiver_id: Any) -> tuple:
    """Validate a sender/receiver pair. Self-messaging is rejected."""
    sender = clean_identifier(sender_id, 'senderId')
    receiver = clean_identifier(receiver_id, 'receiverId')
    if sender == receiver:
        raise ValidationError('Cannot send a message to yourself', field='receiverId')
    return sender, receiver


def parse_limit(value: Any, max_limit: int) -> Optional[int]:
    """Parse an optional positive page size, capped at max_limit."""
    if value is None or value == '':
        return None
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError('limit must be an integer', field='limit')
    if limit < 1:
        raise ValidationError('limit must be >= 1', field='limit')
    return min(limit, max_limit)
