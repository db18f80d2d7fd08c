"""
Caller identity for the HTTP layer.

Identity is issued elsewhere; we only verify it:
1. Bearer JWT (HS256, JWT_SECRET) -> 'sub' claim
2. X-User-Id header when ALLOW_USER_ID_HEADER is on (dev/tests)

Authenticated callers are upserted into the user domain.
"""
import logging
from typing import Optional

import jwt
from fastapi import Header, Request

from threadspire.core.config import settings
from threadspire.core.errors import AuthenticationError

logger = logging.getLogger("threadspire")


def verify_jwt(token: str) -> str:
    """
    Verify a bearer token and return its subject.

    Raises:
        AuthenticationError: bad signature, expired, no secret or no 'sub'
    """
    if not settings.JWT_SECRET:
        raise AuthenticationError("Bearer tokens are not accepted: JWT_SECRET is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no 'sub' claim")
    return str(user_id)


def _resolve_user_id(request: Request, x_user_id: Optional[str]) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        # An invalid token never falls back to the header
        user_id = verify_jwt(auth_header[7:])
    elif x_user_id and settings.ALLOW_USER_ID_HEADER:
        user_id = x_user_id.strip() or None
    else:
        user_id = None

    if user_id:
        from threadspire.features.users.service import get_or_create_user

        get_or_create_user(user_id)
        request.state.user_id = user_id
    return user_id


async def get_optional_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test caller id"),
) -> Optional[str]:
    """Caller id, or None for anonymous requests."""
    return _resolve_user_id(request, x_user_id)


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test caller id"),
) -> str:
    """
    Caller id for endpoints that need one.

    Raises:
        AuthenticationError 401: no credentials
    """
    user_id = _resolve_user_id(request, x_user_id)
    if not user_id:
        raise AuthenticationError("Missing Authorization (Bearer JWT) or X-User-Id header")
    return user_id
