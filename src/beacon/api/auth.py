"""Owner identification for the management API.

Provides:
- Bearer token authentication with HMAC-SHA256 signed tokens
- The ``X-User-Id`` header fallback when auth is disabled (the host app
  authenticates upstream)
"""

from __future__ import annotations

import hashlib
import hmac
import time
from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from beacon.exceptions import AuthenticationError
from beacon.logging import get_logger

if TYPE_CHECKING:
    from beacon.config import Settings

logger = get_logger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)

USER_ID_HEADER = "X-User-Id"


class TokenValidator:
    """Validates Bearer tokens using HMAC-SHA256.

    Token format: user_id:expires_at:signature
    where signature = HMAC(secret, user_id:expires_at)
    """

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key.encode()

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(self, user_id: str, expire_minutes: int = 60) -> str:
        """Create a signed token for a user.

        Args:
            user_id: User identifier (must not contain ':').
            expire_minutes: Token validity in minutes.

        Returns:
            Signed token string.
        """
        if not user_id or ":" in user_id:
            raise ValueError("user_id must be non-empty and must not contain ':'")
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{user_id}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> str:
        """Validate a token and return the user ID it was issued for.

        Raises:
            AuthenticationError: If token is malformed, forged or expired.
        """
        parts = token.split(":")
        if len(parts) != 3:
            raise AuthenticationError("Invalid token format")

        user_id, expires_at_str, signature = parts
        if not hmac.compare_digest(signature, self._sign(f"{user_id}:{expires_at_str}")):
            raise AuthenticationError("Invalid token signature")

        try:
            expires_at = int(expires_at_str)
        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        if time.time() > expires_at:
            raise AuthenticationError("Token has expired")

        return user_id


@lru_cache(maxsize=1)
def get_token_validator(secret_key: str) -> TokenValidator:
    """Get or create the token validator singleton for a secret key."""
    return TokenValidator(secret_key)


def reset_auth_singletons() -> None:
    """Reset the cached token validator (for testing)."""
    get_token_validator.cache_clear()


def resolve_user_id(
    settings: Settings,
    credentials: HTTPAuthorizationCredentials | None,
    header_user_id: str | None,
) -> str:
    """Determine the requesting owner.

    With auth enabled a valid bearer token is required. With auth disabled
    the owner comes from the X-User-Id header.

    Raises:
        AuthenticationError: If no usable identity was supplied.
    """
    if settings.is_auth_enabled:
        if credentials is None:
            raise AuthenticationError("Missing authentication credentials")
        validator = get_token_validator(settings.effective_auth_secret_key)
        user_id = validator.validate_token(credentials.credentials)
        logger.debug("User authenticated", user_id=user_id)
        return user_id

    if not header_user_id or not header_user_id.strip():
        raise AuthenticationError(f"Missing {USER_ID_HEADER} header")
    return header_user_id.strip()
