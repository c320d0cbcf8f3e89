"""
Authentication: JWT validation and current user dependency.

Tokens are issued elsewhere; this service only verifies them. The `sub`
claim is the owner id of every document the caller touches; the optional
`role` claim grants administrative routes.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ekyc_documents.core.exceptions import Forbidden, Unauthorized

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str | None = None
    email: str | None = None


def decode_token(token: str, secret: str, algorithm: str) -> dict:
    if not secret:
        raise Unauthorized("Authentication is not configured")
    try:
        return jwt.decode(token, secret, algorithms=[algorithm], options={"require": ["sub"]})
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired", code="TOKEN_EXPIRED") from None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected token: {type(e).__name__}")
        raise Unauthorized("Invalid token", code="INVALID_TOKEN") from None


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> CurrentUser:
    """Dependency: validate the bearer token and return the caller."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token required", code="TOKEN_REQUIRED")

    settings = request.app.state.settings
    claims = decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise Unauthorized("Invalid token", code="INVALID_TOKEN")
    return CurrentUser(id=subject, role=claims.get("role"), email=claims.get("email"))


async def require_admin(
    request: Request,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    if user.role != request.app.state.settings.admin_role:
        logger.warning(f"User {user.id} denied administrative access")
        raise Forbidden("Administrator role required")
    return user
