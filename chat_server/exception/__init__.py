from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.exception.ValidationError import ValidationError
from chat_server.exception.NotFoundError import NotFoundError
from chat_server.exception.TransientStoreError import TransientStoreError

__all__ = ['UnauthorizedError', 'ValidationError', 'NotFoundError', 'TransientStoreError']
