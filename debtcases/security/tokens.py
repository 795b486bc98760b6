"""
Session tokens.

The login flow (outside this service) calls `issue_token` once the user's
password has been checked; every request afterwards carries the token as
`Authorization: Bearer <jwt>`. The role is embedded at login and stays fixed
for the lifetime of the token.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from debtcases.errors import AuthenticationError
from debtcases.models.security import User
from debtcases.settings import Settings

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ("sub", "role", "exp", "iat")


def issue_token(user: User, settings: Settings, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": user.employee_code,
        "role": user.role,
        "dept": user.department,
        "branch_code": user.branch_code,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.token_ttl_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify signature and lifetime, then return the claims.

    Raises AuthenticationError for anything that is not a valid, unexpired
    token signed with our secret. Never logs the token itself.
    """

    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": list(_REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError as e:
        logger.info("Token expired")
        raise AuthenticationError("Token expired") from e
    except jwt.MissingRequiredClaimError as e:
        logger.info("Token missing claim: %s", e.claim)
        raise AuthenticationError("Invalid token") from e
    except jwt.InvalidTokenError as e:
        logger.info("Token invalid: %s", type(e).__name__)
        raise AuthenticationError("Invalid token") from e
