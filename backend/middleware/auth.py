"""
API caller authentication.

Callers present `Authorization: Bearer <jwt>` where the token is an HS256
access token issued by this service (`sub` = user id). Vendor webhooks do
not use this path; they are authenticated per vendor in the adapters.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.errors import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise ConfigurationError("Server auth misconfigured (JWT secret missing).")
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")


def issue_access_token(*, user_id: int, email: Optional[str] = None) -> str:
    if not settings.jwt_secret:
        raise ConfigurationError("Server auth misconfigured (JWT secret missing).")
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


async def require_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> int:
    """FastAPI dependency: the authenticated caller's user id."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")
    payload = decode_access_token(token)
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        logger.warning("Access token with non-numeric subject")
        raise UnauthorizedError("Invalid access token.")
