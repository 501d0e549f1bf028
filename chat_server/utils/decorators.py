"""Route decorators for common patterns like error handling and authentication.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request

from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.exception.ValidationError import ValidationError
from chat_server.exception.NotFoundError import NotFoundError
from chat_server.exception.TransientStoreError import TransientStoreError
from chat_server.utils.helpers import respond_error
from chat_server.security.authentication import get_auth_payload

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to handle common exceptions in route handlers.

    Catches:
    - UnauthorizedError -> 401
    - ValidationError -> 400
    - NotFoundError -> 404
    - TransientStoreError -> 503 (client may retry)
    - Other exceptions -> 500

    Usage:
        @bp.route('/example')
        @handle_errors
        def example_route():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401)
        except ValidationError as e:
            logger.info("Validation error: %s", e)
            return respond_error(str(e), status=400)
        except NotFoundError as e:
            return respond_error(str(e), status=404)
        except TransientStoreError as e:
            logger.error("Store unavailable in %s: %s", func.__name__, e)
            return respond_error('Chat storage temporarily unavailable', status=503, retryable=True)
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` as a keyword argument.

    Usage:
        @bp.route('/protected')
        @require_auth
        def protected_route(auth_payload):
            user_id = auth_payload.get('user_id')
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        kwargs['auth_payload'] = payload
        return func(*args, **kwargs)
    return wrapper
