from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from debtcases.models.cases import DebtCase
from debtcases.security.scope import ScopeDecision, case_scope_criteria

SKIP_CASE_SCOPE = "skip_case_scope"
CASE_SCOPE = "case_scope"
REQUEST_STATE = "request_state"


def current_case_scope(session: Session) -> ScopeDecision | None:
    """
    The decision that applies to `session` right now.

    An explicit `Session.info["case_scope"]` wins; otherwise the decision is read
    from the request state attached by `get_db`. It is looked up on every
    execute because the security dependency may store it after the session
    was opened.
    """

    decision = session.info.get(CASE_SCOPE)
    if decision is not None:
        return decision
    return getattr(session.info.get(REQUEST_STATE), "scope", None)


@event.listens_for(Session, "do_orm_execute")
def _apply_case_scope(execute_state: ORMExecuteState) -> None:
    """
    Transparent data scoping.

    Keeps query code unchanged:
        db.scalars(select(DebtCase)).all()
    only returns the cases the caller may see, including rows reached through
    relationship loads.

    Internal lookups that must see every case (delegation validation,
    `can_access`) opt out with `execution_options(skip_case_scope=True)`.
    """

    if not execute_state.is_select:
        return
    if execute_state.execution_options.get(SKIP_CASE_SCOPE, False):
        return

    decision = current_case_scope(execute_state.session)
    if decision is None:
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(DebtCase, case_scope_criteria(decision))
    )
