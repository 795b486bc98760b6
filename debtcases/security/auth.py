from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from debtcases.errors import AuthenticationError
from debtcases.models.security import User
from debtcases.security.config import SecurityConfig
from debtcases.security.context import Identity
from debtcases.security.roles import Role
from debtcases.security.tokens import decode_token
from debtcases.settings import Settings

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request, config: SecurityConfig) -> str:
    """
    Read `Authorization: Bearer <token>`.

    Raises AuthenticationError when the header is missing, malformed or empty.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError("Authentication required")

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError(f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.")

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise AuthenticationError(f"Invalid {header_name}. Missing token after '{bearer_prefix}'.")

    return token


def load_user(db: Session, employee_code: str) -> User:
    user = db.execute(select(User).where(User.employee_code == employee_code)).scalar_one_or_none()

    if user is None or not user.is_active:
        logger.warning("Rejected unknown or inactive user employee_code=%s", employee_code)
        raise AuthenticationError("Invalid or inactive user")

    return user


def identity_from_token(db: Session, token: str, settings: Settings) -> Identity:
    """
    Token claims + current user row -> Identity.

    Role, department and branch come from the token; status comes from the
    database so that disabling a user takes effect immediately.
    """

    claims = decode_token(token, settings)
    user = load_user(db, str(claims["sub"]))

    try:
        role = Role.parse(str(claims["role"]))
    except ValueError as exc:
        logger.warning("Token carries unknown role employee_code=%s", user.employee_code)
        raise AuthenticationError("Invalid user credentials") from exc

    return Identity(
        employee_code=user.employee_code,
        role=role,
        department=str(claims.get("dept") or user.department),
        branch_code=str(claims.get("branch_code") or user.branch_code),
        status=user.status,
    )


def authenticate(request: Request, db: Session, config: SecurityConfig, settings: Settings) -> Identity:
    token = extract_bearer_token(request, config)
    return identity_from_token(db, token, settings)
