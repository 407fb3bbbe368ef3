"""
ORM-level tenant guard. Independent of what query a handler writes,
SELECT/UPDATE/DELETE on tenant-scoped models are filtered to the session's tenant.
INSERT and UPDATE values may only name that tenant. Flushing a row that belongs
to another tenant is rejected.
PostgreSQL row-level security (schema.py) is the second, database-side layer.
"""

from typing import Any, Iterator, Mapping, Optional

from sqlalchemy import Column, String, event
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from billing_pipeline.security.exceptions import TenantIsolationError
from billing_pipeline.security.tenant_context import TenantContext

TENANT_INFO_KEY = "tenant_id"
TENANT_COLUMN = "tenant_id"

_UNSET = object()


class TenantScoped:
    """Mixin for models whose rows belong to exactly one tenant."""

    # Copied onto every mapped subclass; also what the loader criteria below compile against.
    tenant_id = Column(String(64), nullable=False, index=True)


class TenantAwareSession(Session):
    """Sync session class behind every AsyncSession the Database hands out."""


def bind_tenant(session, tenant_id: str) -> None:
    """Attach tenant_id to a session (AsyncSession or Session). Session-local, never pooled."""
    target = getattr(session, "sync_session", session)
    target.info[TENANT_INFO_KEY] = tenant_id


def current_tenant(session) -> Optional[str]:
    target = getattr(session, "sync_session", session)
    return target.info.get(TENANT_INFO_KEY)


def _value_rows(execute_state: ORMExecuteState) -> Iterator[Mapping[Any, Any]]:
    """Every column/value mapping a DML statement will write: .values() rows plus execute() parameters."""
    statement = execute_state.statement
    if getattr(statement, "_values", None):
        yield statement._values
    for batch in getattr(statement, "_multi_values", None) or ():
        for row in batch:
            if not isinstance(row, Mapping):
                raise TenantIsolationError("Tenant isolation: positional VALUES rejected on tenant-scoped table")
            yield row
    params = execute_state.parameters
    if isinstance(params, Mapping):
        yield params
    elif params:
        yield from params


def _assigned_tenant(row: Mapping[Any, Any]) -> Any:
    for key, value in row.items():
        # Keys are plain strings, Columns or ORM attributes; values may be bind parameters.
        if getattr(key, "key", key) == TENANT_COLUMN:
            return getattr(value, "value", value)
    return _UNSET


def _guard_written_values(execute_state: ORMExecuteState, tenant_id: str) -> None:
    """Reject any written tenant_id other than the scope's."""
    for row in _value_rows(execute_state):
        assigned = _assigned_tenant(row)
        if assigned is not _UNSET:
            TenantContext.validate_access(assigned, tenant_id)


def _tenant_model(execute_state: ORMExecuteState):
    mapper = execute_state.bind_mapper
    if mapper is not None and issubclass(mapper.class_, TenantScoped):
        return mapper.class_
    return None


@event.listens_for(TenantAwareSession, "do_orm_execute")
def _scope_statement_to_tenant(execute_state: ORMExecuteState) -> None:
    tenant_id = execute_state.session.info.get(TENANT_INFO_KEY)
    if tenant_id is None:
        return

    if execute_state.is_select:
        if execute_state.is_column_load or execute_state.is_relationship_load:
            return
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                TenantScoped,
                lambda cls: cls.tenant_id == tenant_id,
                include_aliases=True,
            )
        )
    elif execute_state.is_insert:
        if _tenant_model(execute_state) is None:
            return
        _guard_written_values(execute_state, tenant_id)
        statement = execute_state.statement
        # Single-row .values() without a tenant takes the scope's; other forms hit NOT NULL.
        if getattr(statement, "_values", None) and _assigned_tenant(statement._values) is _UNSET:
            execute_state.statement = statement.values({TENANT_COLUMN: tenant_id})
    elif execute_state.is_update or execute_state.is_delete:
        model = _tenant_model(execute_state)
        if model is None:
            return
        if execute_state.is_update:
            _guard_written_values(execute_state, tenant_id)
        execute_state.statement = execute_state.statement.where(model.tenant_id == tenant_id)


@event.listens_for(TenantAwareSession, "before_flush")
def _reject_foreign_tenant_writes(session: Session, flush_context, instances) -> None:
    tenant_id = session.info.get(TENANT_INFO_KEY)
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if not isinstance(obj, TenantScoped):
            continue
        if tenant_id is None:
            raise TenantIsolationError(
                f"Tenant isolation: {type(obj).__name__} written outside a tenant scope"
            )
        if obj in session.new and obj.tenant_id is None:
            obj.tenant_id = tenant_id
        TenantContext.validate_access(obj.tenant_id, tenant_id)
