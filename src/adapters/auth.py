from __future__ import annotations

import logging
from typing import Optional

import jwt

from src.orchestrator.intents import Role
from src.orchestrator.state import AuthContext

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def resolve_auth_context(authorization: Optional[str], secret: str, algorithm: str = "HS256") -> AuthContext:
    """Turn an ``Authorization`` header into an :class:`AuthContext`; anything invalid is a guest."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return AuthContext.guest()
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        return AuthContext.guest()
    if not secret:
        logger.warning("JWT_ACCESS_SECRET is not configured; chat auth context is unavailable")
        return AuthContext.guest()

    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError:
        logger.debug("Chat request has invalid or expired auth token; treating as guest")
        return AuthContext.guest()

    subject = payload.get("sub")
    role = Role.from_label(payload.get("role"))
    if not subject or role is None:
        return AuthContext.guest()
    return AuthContext(is_authenticated=True, user_id=str(subject), role=role)
