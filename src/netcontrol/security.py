"""Bearer credential resolution.

Tokens are issued by the login service; this module only verifies them and
turns the claims into a :class:`Principal`. Expected claims:

- ``sub``: operator id
- ``role``: ``admin`` or ``operator`` (defaults to ``operator``)
- ``callsign``: optional, copied onto log entries
"""

from __future__ import annotations

import logging
from typing import Optional

import jwt  # PyJWT

from .config import settings
from .errors import Unauthenticated
from .models.domain import Principal

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Authorization header must use the Bearer scheme")
    return token.strip()


def resolve_principal(token: Optional[str]) -> Principal:
    """Validate a bearer token and return the caller it identifies."""
    if not token:
        raise Unauthenticated("Missing bearer token")
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.debug(f"Rejected bearer token: {exc}")
        raise Unauthenticated("Invalid token") from exc

    return Principal(
        id=str(claims["sub"]),
        role=str(claims.get("role") or "operator"),
        callsign=claims.get("callsign"),
    )
