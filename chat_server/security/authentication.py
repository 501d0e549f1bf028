"""Identity token handling.

The marketplace's identity provider signs a JWT after verifying credentials.
The chat server only decodes it and trusts the `user_id` (legacy: `id`) and
`role` claims; credentials are never checked here.
"""
from datetime import timedelta, datetime, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError, ExpiredSignatureError

from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.utils.validation import IDENTIFIER_PATTERN


class AuthSecurity:
    secret_key = None
    algorithm = 'HS256'
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7 * 24 * 60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        """Mint a token the way the identity provider does (tooling and tests)."""
        if not cls.secret_key:
            raise RuntimeError('AuthSecurity is not configured with a secret key')
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        # Check for well-formed JWT (should have 2 dots)
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token in the Authorization header.")
        if not cls.secret_key:
            raise UnauthorizedError("Server is not configured to verify tokens.")
        try:
            return jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        except JWTError as e:
            msg = str(e)
            if 'Signature verification failed' in msg:
                raise UnauthorizedError("Invalid token signature. Please login again.")
            raise UnauthorizedError(f"Invalid token: {msg}.")

    @classmethod
    def identity(cls, token: str) -> Dict[str, Any]:
        """Decode a token into the chat identity: {'user_id', 'role'}."""
        payload = cls.decode_token(token)
        user_id = payload.get('user_id') or payload.get('id') or payload.get('sub')
        if user_id is not None:
            user_id = str(user_id)
        if not user_id or not IDENTIFIER_PATTERN.match(user_id):
            raise UnauthorizedError("Token does not carry a valid user id.")
        return {'user_id': user_id, 'role': payload.get('role')}


def extract_bearer(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    parts = header_value.split(' ', 1)
    if len(parts) == 2 and parts[0].lower() == 'bearer':
        return parts[1].strip() or None
    return None


def get_auth_payload(request) -> Dict[str, Any]:
    """Return the caller identity for a Flask request or raise UnauthorizedError."""
    token = extract_bearer(request.headers.get('Authorization'))
    if not token:
        raise UnauthorizedError("Not authorized, no token")
    return AuthSecurity.identity(token)
