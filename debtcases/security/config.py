from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from debtcases.security.roles import (
    DEFAULT_SCOPE_OVERRIDES,
    ActionCategory,
    Role,
    ScopeLevel,
    ScopeOverride,
)


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


class DefaultRule(BaseModel):
    auth_required: bool = True
    allowed_roles: list[Role] = Field(default_factory=list)
    required_permissions: list[str] = Field(default_factory=list)
    match: Literal["any", "all"] = "any"


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    allowed_roles: list[Role] = Field(default_factory=list)
    required_permissions: list[str] = Field(default_factory=list)
    match: Literal["any", "all"] | None = None
    scope: ActionCategory | None = None
    export_gate: bool = False

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class ScopeOverrideRule(BaseModel):
    name: str
    level: Literal["own", "department", "all"] = "all"
    branch_code: str | None = None
    departments: list[str] = Field(default_factory=list)
    roles: list[Role] = Field(default_factory=list)
    actions: list[ActionCategory] = Field(default_factory=list)
    min_base_level: Literal["own", "department", "all"] = "own"
    legacy_only: bool = False

    def to_override(self) -> ScopeOverride:
        return ScopeOverride(
            name=self.name,
            level=ScopeLevel[self.level.upper()],
            branch_code=self.branch_code,
            departments=frozenset(self.departments),
            roles=frozenset(self.roles),
            actions=frozenset(self.actions),
            min_base_level=ScopeLevel[self.min_base_level.upper()],
            legacy_only=self.legacy_only,
        )


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)
    # None means "use the built-in table"; an empty list disables all overrides.
    scope_overrides: list[ScopeOverrideRule] | None = None


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    allowed_roles: frozenset[Role]
    required_permissions: frozenset[str]
    match: Literal["any", "all"]
    scope: ActionCategory | None
    export_gate: bool

    @property
    def checks_access(self) -> bool:
        return bool(self.allowed_roles or self.required_permissions)


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/delegations/{delegation_id}/revoke" -> r"^/delegations/[^/]+/revoke$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for rule in self.model.routes:
            self._exact_rules.setdefault(rule.path, []).append(rule)
        self._compiled_rules = [(_path_template_to_regex(rule.path), rule) for rule in self.model.routes]

        if self.model.scope_overrides is None:
            self._overrides = DEFAULT_SCOPE_OVERRIDES
        else:
            self._overrides = tuple(r.to_override() for r in self.model.scope_overrides)

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    @property
    def scope_overrides(self) -> tuple[ScopeOverride, ...]:
        return self._overrides

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(
            auth_required=default.auth_required,
            allowed_roles=frozenset(default.allowed_roles),
            required_permissions=frozenset(default.required_permissions),
            match=default.match,
            scope=None,
            export_gate=False,
        )


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # Any security requirement on a rule implies authentication, even if the
    # global default is "public".
    inferred_auth_required = (
        default.auth_required
        or bool(rule.allowed_roles)
        or bool(rule.required_permissions)
        or rule.scope is not None
        or rule.export_gate
    )

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        allowed_roles=frozenset(rule.allowed_roles or default.allowed_roles),
        required_permissions=frozenset(rule.required_permissions or default.required_permissions),
        match=rule.match or default.match,
        scope=rule.scope,
        export_gate=rule.export_gate,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
