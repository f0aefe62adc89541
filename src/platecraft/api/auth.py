"""Bearer-token authentication for the Platecraft API.

Tokens are HS256 JWTs issued by the client application's identity provider
(for example Supabase).  A valid token must carry a ``sub`` claim.  The owner
identity that scopes every image is the household id from ``app_metadata`` or
``user_metadata`` when present, falling back to the user id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from platecraft.core.config import PlatecraftConfig
from platecraft.core.errors import AuthError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity extracted from a verified token."""

    user_id: str
    owner_id: str


def _household_id(claims: dict[str, Any]) -> str | None:
    for section in ("app_metadata", "user_metadata"):
        metadata = claims.get(section)
        if isinstance(metadata, dict) and metadata.get("household_id"):
            return str(metadata["household_id"])
    return None


def verify_token(token: str, config: PlatecraftConfig) -> AuthenticatedUser:
    """Verify *token* and return the caller's identity.

    Raises:
        AuthError: If the token is malformed, expired, wrongly signed, has
            the wrong audience, or lacks a subject.
    """
    options = {"verify_aud": config.jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            options=options,
        )
    except JWTError as exc:
        logger.info("JWT verification failed: %s", exc)
        raise AuthError("Invalid or expired token") from exc

    user_id = claims.get("sub")
    if not user_id:
        raise AuthError("Invalid token: missing user ID")

    return AuthenticatedUser(user_id=str(user_id), owner_id=_household_id(claims) or str(user_id))


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """FastAPI dependency resolving the authenticated caller."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Missing or invalid Authorization header")
    return verify_token(credentials.credentials, request.app.state.config)
