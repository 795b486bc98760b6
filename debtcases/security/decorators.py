from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Literal

from debtcases.security.roles import ActionCategory, Role


def require_access(
    permissions: Iterable[str] = (),
    roles: Iterable[Role] = (),
    match: Literal["any", "all"] = "any",
) -> Callable:
    """
    Declare the access rule on the endpoint itself.

    Implementation detail:
    - This decorator does NOT perform the check.
    - It attaches metadata that the global security dependency reads after
      routing and merges with the YAML rule for the route.
    """

    def decorator(fn: Callable) -> Callable:
        existing_perms = set(getattr(fn, "__security_required_permissions__", set()))
        existing_roles = set(getattr(fn, "__security_allowed_roles__", set()))
        setattr(fn, "__security_required_permissions__", existing_perms | set(permissions))
        setattr(fn, "__security_allowed_roles__", existing_roles | set(roles))
        setattr(fn, "__security_match__", match)
        return fn

    return decorator


def scoped(action: ActionCategory) -> Callable:
    """
    Resolve the caller's data scope for `action` before the handler runs.

    The decision lands on `request.state.scope`, and `debt_cases` queries on the
    request session are filtered by it.
    """

    def decorator(fn: Callable) -> Callable:
        setattr(fn, "__security_scope__", action)
        return fn

    return decorator
