"""
Identity resolution for the BrandForge API.

Validates bearer JWTs and maps the authenticated user to a team.
Falls back to the X-User-Id header when AUTH_ALLOW_HEADER_FALLBACK is set
(development and tests). Every failure path is a 401.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Header, Request
from sqlalchemy import select
import jwt

from brandforge.core.config import settings
from brandforge.core.database import get_db_session, users
from brandforge.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    team_id: str


def verify_jwt(token: str) -> str:
    """
    Verify a bearer JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id: Extracted from the token's 'sub' claim

    Raises:
        UnauthorizedError: Invalid, expired or unverifiable token
    """
    if not settings.AUTH_JWT_SECRET:
        logger.warning("AUTH_JWT_SECRET not configured, rejecting bearer token")
        raise UnauthorizedError("Authentication is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Token has no subject")
    return str(user_id)


def resolve_team_id(user_id: str) -> Optional[str]:
    """Look up the team of a user; None when the user or team is unknown."""
    with get_db_session() as session:
        row = session.execute(
            select(users.c.team_id).where(users.c.user_id == user_id)
        ).first()
    if row is None:
        return None
    return row.team_id


async def get_current_identity(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development/test user ID"),
) -> Identity:
    """
    Resolve the caller to {user_id, team_id}.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (only with AUTH_ALLOW_HEADER_FALLBACK)
    3. Raise 401 Unauthorized
    """
    user_id: Optional[str] = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_jwt(auth_header[7:])
    elif x_user_id and settings.AUTH_ALLOW_HEADER_FALLBACK:
        user_id = x_user_id

    if not user_id:
        raise UnauthorizedError("Missing Authorization (Bearer JWT) header")

    try:
        team_id = resolve_team_id(user_id)
    except Exception as e:
        logger.error(f"[auth] team lookup failed for user {user_id}: {e}")
        raise UnauthorizedError("Could not resolve identity")

    if not team_id:
        logger.warning("[auth] user has no team", extra={"user_id": user_id})
        raise UnauthorizedError("User is not a member of a team")

    request.state.user_id = user_id
    return Identity(user_id=user_id, team_id=team_id)
