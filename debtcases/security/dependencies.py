from __future__ import annotations

import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from debtcases.db.session import get_db
from debtcases.errors import AuthenticationError, AuthorizationError
from debtcases.security.auth import authenticate
from debtcases.security.config import SecurityConfig
from debtcases.security.context import Identity
from debtcases.security.resolver import PermissionResolver
from debtcases.security.scope import ScopeDecision, ScopeFilter
from debtcases.services.allowlist import ExportAllowlist, build_allowlist, can_export
from debtcases.services.delegations import DelegationManager
from debtcases.services.notifications import LoggingNotificationSink
from debtcases.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_identity(request: Request) -> Identity:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise AuthenticationError("Authentication required")
    return identity


def get_scope(request: Request) -> ScopeDecision:
    decision = getattr(request.state, "scope", None)
    if decision is None:
        raise RuntimeError("Route has no scope action configured")
    return decision


def get_resolver(db: Session = Depends(get_db)) -> PermissionResolver:
    return PermissionResolver.for_session(db)


def get_allowlist(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> ExportAllowlist:
    return build_allowlist(settings, db)


def get_delegation_manager(request: Request, db: Session = Depends(get_db)) -> DelegationManager:
    sink = getattr(request.app.state, "notification_sink", None) or LoggingNotificationSink()
    return DelegationManager(db, sink=sink)


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    db: Session = Depends(get_db, use_cache=False),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Global security dependency (configuration-driven).

    Runs after routing, so decorator metadata on the endpoint is merged with
    the YAML rule. Steps, each failing closed:

    1. authenticate (401)
    2. role / permission check through the resolver (403)
    3. data scope for the route's action category (403 if none)
    4. report export gate (403)
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorator_perms = set(getattr(endpoint, "__security_required_permissions__", set())) if endpoint else set()
    decorator_roles = set(getattr(endpoint, "__security_allowed_roles__", set())) if endpoint else set()
    decorator_match = getattr(endpoint, "__security_match__", None) if endpoint else None
    decorator_scope = getattr(endpoint, "__security_scope__", None) if endpoint else None

    required_permissions = set(rule.required_permissions) | decorator_perms
    allowed_roles = set(rule.allowed_roles) | decorator_roles
    match = decorator_match or rule.match
    scope_action = decorator_scope or rule.scope
    export_required = rule.export_gate

    auth_required = (
        rule.auth_required
        or bool(required_permissions)
        or bool(allowed_roles)
        or scope_action is not None
        or export_required
    )
    if not auth_required:
        return

    identity = authenticate(request, db, config, settings)
    request.state.identity = identity

    resolver = PermissionResolver.for_session(db)
    action = f"{method} {path}"

    if required_permissions or allowed_roles:
        resolver.require(identity, required_permissions, allowed_roles, match=match, action=action)

    if scope_action is not None:
        decision = ScopeFilter(resolver, config.scope_overrides).resolve(identity, scope_action)
        if decision is None:
            raise AuthorizationError("You do not have access to any data for this action.")
        request.state.scope = decision

    if export_required and not can_export(identity, resolver, build_allowlist(settings, db), settings):
        logger.warning(
            "Report export denied employee_code=%s role=%s path=%s",
            identity.employee_code,
            identity.role.value,
            path,
        )
        raise AuthorizationError("You are not allowed to export reports.")
