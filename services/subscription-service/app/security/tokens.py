"""Utilities for issuing and validating bearer JWTs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import jwt

from ..config import get_settings

SERVICE_ROLE = "service_role"
AUTHENTICATED_ROLE = "authenticated"


@dataclass(slots=True, frozen=True)
class Principal:
    """Identity extracted from a verified token."""

    subject: str
    role: str

    @property
    def is_service(self) -> bool:
        return self.role == SERVICE_ROLE


def issue_access_token(
    *, subject: str, role: str = AUTHENTICATED_ROLE, ttl_seconds: int = 3600
) -> str:
    """Create a signed JWT in the shape the database's auth server issues.

    Parameters
    ----------
    subject:
        Account identifier (or scheduler name) placed in the ``sub`` claim.
    role:
        ``authenticated`` for end users, ``service_role`` for the scheduler.
    ttl_seconds:
        Lifetime of the token.

    Returns
    -------
    str
        The encoded JWT.
    """

    settings = get_settings()
    now = int(time.time())
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> Principal:
    """Verify a JWT and return the principal it names.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    claims = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"verify_aud": False, "require": ["exp"]},
    )
    role = str(claims.get("role", AUTHENTICATED_ROLE))
    # service keys carry no subject
    return Principal(subject=str(claims.get("sub") or role), role=role)
