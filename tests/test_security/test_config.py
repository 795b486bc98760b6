"""Tests for the YAML route-security config and route matching."""
from __future__ import annotations

from pathlib import Path

import pytest

from debtcases.security.config import load_security_config
from debtcases.security.roles import DEFAULT_SCOPE_OVERRIDES, ActionCategory, Role, ScopeLevel

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"


def _write(tmp_path, text: str) -> Path:
    path = tmp_path / "security.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_security_key_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="Missing top-level 'security' key"):
        load_security_config(_write(tmp_path, "routes: []\n"))


def test_exact_match_wins_over_template(tmp_path):
    config = load_security_config(
        _write(
            tmp_path,
            """
security:
  routes:
    - path: /delegations/{delegation_id}
      methods: [GET]
      required_permissions: [view_delegations]
    - path: /delegations/expired
      methods: [GET]
      allowed_roles: [administrator]
""",
        )
    )

    exact = config.match("/delegations/expired", "get")
    template = config.match("/delegations/abc", "GET")

    assert exact.allowed_roles == frozenset({Role.ADMINISTRATOR})
    assert template.required_permissions == frozenset({"view_delegations"})


def test_unmatched_route_falls_back_to_default(tmp_path):
    config = load_security_config(_write(tmp_path, "security:\n  default:\n    auth_required: false\n"))

    rule = config.match("/anything", "POST")

    assert rule.auth_required is False
    assert rule.scope is None
    assert not rule.checks_access


def test_scope_rule_implies_authentication(tmp_path):
    config = load_security_config(
        _write(
            tmp_path,
            """
security:
  default:
    auth_required: false
  routes:
    - path: /reports/data
      scope: view
""",
        )
    )

    rule = config.match("/reports/data", "GET")

    assert rule.auth_required is True
    assert rule.scope is ActionCategory.VIEW


def test_unknown_role_in_config_is_a_validation_error(tmp_path):
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        load_security_config(
            _write(tmp_path, "security:\n  routes:\n    - path: /x\n      allowed_roles: [superuser]\n")
        )


def test_overrides_default_to_builtin_table(tmp_path):
    config = load_security_config(_write(tmp_path, "security: {}\n"))

    assert config.scope_overrides == DEFAULT_SCOPE_OVERRIDES


def test_overrides_from_yaml(tmp_path):
    config = load_security_config(
        _write(
            tmp_path,
            """
security:
  scope_overrides:
    - name: audit
      departments: [KTGSNB]
      actions: [view]
      level: department
""",
        )
    )

    (override,) = config.scope_overrides
    assert override.name == "audit"
    assert override.level is ScopeLevel.DEPARTMENT
    assert override.actions == frozenset({ActionCategory.VIEW})


def test_shipped_config_loads_and_matches_builtin_overrides():
    config = load_security_config(REPO_CONFIG)

    assert tuple(config.scope_overrides) == DEFAULT_SCOPE_OVERRIDES
    assert config.match("/health", "GET").auth_required is False
    put_rule = config.match("/users/E1/permissions", "PUT")
    assert put_rule.match == "all"
    assert config.match("/reports/export", "GET").export_gate is True
    state_rule = config.match("/cases/C1/state", "PATCH")
    assert Role.DIRECTOR not in state_rule.allowed_roles
    assert "edit_all_cases" in state_rule.required_permissions
    assert config.match("/delegations/case/C1", "GET").checks_access is False
    sweep_rule = config.match("/delegations/expire-overdue", "POST")
    assert sweep_rule.required_permissions == frozenset({"manage_delegations"})
