"""
Tenant Isolation Boundary

Every tenant-scoped table carries an ``organization_id`` column. A row is
visible or writable through a session only when:

    row.organization_id == context.organization_id  OR  context.bypass_rls

With no organization bound and bypass off, nothing matches (fail closed):
queries come back empty rather than raising.

The context is an explicit value stored on each database session
(``session.info``), never on the process or the thread, so concurrent
requests on different sessions cannot see each other's tenant.

Enforcement happens twice:
1. In the ORM: SELECT / UPDATE / DELETE statements get an extra
   ``organization_id`` criterion, and flushes that would write a row
   outside the context raise TenantIsolationError.
2. In PostgreSQL: the same rule is installed as row-level-security
   policies by migration. At the start of each transaction the session
   writes ``app.current_organization`` and ``app.bypass_rls`` with
   ``set_config(..., true)`` so the policies see the same context.

The ``organizations`` table is deliberately NOT tenant-scoped: login must
resolve the organization before any context exists.
"""
import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import chain
from typing import Iterator, Optional

from sqlalchemy import Column, ForeignKey, String, event, false, inspect, text
from sqlalchemy.orm import ORMExecuteState, Session, declared_attr, with_loader_criteria

from ethicsdesk.core.exceptions import TenantIsolationError
from ethicsdesk.utils.logging import log_security_event

logger = logging.getLogger(__name__)

TENANT_CONTEXT_KEY = "tenant_context"

# Session configuration parameters read by the PostgreSQL policies
CURRENT_ORGANIZATION_SETTING = "app.current_organization"
BYPASS_RLS_SETTING = "app.bypass_rls"


@dataclass(frozen=True)
class TenantContext:
    """Tenant identity bound to one database session."""

    organization_id: Optional[str] = None
    bypass_rls: bool = False

    def allows(self, organization_id: Optional[str]) -> bool:
        if self.bypass_rls:
            return True
        return self.organization_id is not None and organization_id == self.organization_id


NO_CONTEXT = TenantContext()


class BypassReason(str, enum.Enum):
    """
    The only operations allowed to switch tenant filtering off.

    Adding a member here is the administrative decision that grants a new
    code path cross-tenant access.
    """
    LOGIN = "login"
    TOKEN_REFRESH = "token_refresh"
    OPERATOR_INTAKE = "operator_intake"
    OPERATOR_LOOKUP = "operator_lookup"
    SYSTEM_MAINTENANCE = "system_maintenance"


class TenantScoped:
    """
    Mixin for models whose rows belong to exactly one organization.

    Models using this mixin are filtered by the session's TenantContext.
    """

    @declared_attr
    def organization_id(cls):
        return Column(
            String(36),
            ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )


class TenantSession(Session):
    """Session class whose queries honour the bound TenantContext."""

    @property
    def tenant_context(self) -> TenantContext:
        return get_tenant_context(self)


def get_tenant_context(session: Session) -> TenantContext:
    return session.info.get(TENANT_CONTEXT_KEY, NO_CONTEXT)


def bind_tenant_context(session: Session, context: TenantContext) -> TenantContext:
    """
    Bind ``context`` to ``session`` and return the previous one.

    If a transaction is already open the PostgreSQL settings are refreshed
    immediately; otherwise they are written when the next one begins.
    """
    previous = get_tenant_context(session)
    session.info[TENANT_CONTEXT_KEY] = context
    if session.in_transaction():
        _apply_database_settings(session.connection(), context)
    return previous


def set_organization(session: Session, organization_id: Optional[str]) -> TenantContext:
    """Bind a plain (non-bypass) context for ``organization_id``."""
    return bind_tenant_context(session, TenantContext(organization_id=organization_id))


@contextmanager
def organization_scope(session: Session, organization_id: str) -> Iterator[Session]:
    """
    Temporarily run as ``organization_id``, restoring the previous context on exit.

    Pending writes are flushed before the context is restored, and rows
    the previous context may not see are evicted from the session.
    """
    previous = bind_tenant_context(session, TenantContext(organization_id=organization_id))
    try:
        yield session
        session.flush()
    finally:
        _restore_context(session, previous)


@contextmanager
def bypass_rls(session: Session, reason: BypassReason, **details) -> Iterator[Session]:
    """
    Disable tenant filtering for the duration of the block.

    Only callers holding a BypassReason may enter; every entry is logged
    as a security event. On exit, writes made inside the block are
    flushed while still bypassed, the previous context is restored and
    rows loaded for other organizations are evicted, so they cannot be
    reached afterwards through the identity map (``session.get``) or
    written back. Objects from the block are detached; reload what you
    need under the restored context.
    """
    if not isinstance(reason, BypassReason):
        raise ValueError(f"RLS bypass requires a BypassReason, got {reason!r}")

    previous = get_tenant_context(session)
    log_security_event(
        "rls_bypass",
        {"reason": reason.value, "organization_id": previous.organization_id, **details},
        logger
    )
    bind_tenant_context(
        session,
        TenantContext(organization_id=previous.organization_id, bypass_rls=True)
    )
    try:
        yield session
        session.flush()
    finally:
        _restore_context(session, previous)


def _restore_context(session: Session, context: TenantContext) -> None:
    bind_tenant_context(session, context)
    if context.bypass_rls:
        return
    for obj in list(session.identity_map.values()):
        if not isinstance(obj, TenantScoped):
            continue
        # expired attributes are not reloaded here; such rows keep
        # whatever they had when they were loaded
        organization_id = inspect(obj).dict.get("organization_id")
        if organization_id is not None and not context.allows(organization_id):
            session.expunge(obj)


def _apply_database_settings(connection, context: TenantContext) -> None:
    if connection.dialect.name != "postgresql":
        return
    connection.execute(
        text(
            "SELECT set_config(:org_key, :org, true), set_config(:bypass_key, :bypass, true)"
        ),
        {
            "org_key": CURRENT_ORGANIZATION_SETTING,
            "org": context.organization_id or "",
            "bypass_key": BYPASS_RLS_SETTING,
            "bypass": "true" if context.bypass_rls else "false",
        }
    )


@event.listens_for(TenantSession, "after_begin")
def _set_database_context(session, transaction, connection):
    # set_config(..., true) is transaction-local, so it is re-applied on
    # every BEGIN and never survives on a pooled connection.
    _apply_database_settings(connection, get_tenant_context(session))


@event.listens_for(TenantSession, "do_orm_execute")
def _filter_tenant_rows(execute_state: ORMExecuteState):
    if not (execute_state.is_select or execute_state.is_update or execute_state.is_delete):
        return
    # refreshing an already-loaded row is not a new read
    if execute_state.is_column_load:
        return

    context = get_tenant_context(execute_state.session)
    if context.bypass_rls:
        return

    organization_id = context.organization_id
    if organization_id is None:
        criteria = with_loader_criteria(
            TenantScoped,
            lambda cls: false(),
            include_aliases=True
        )
    else:
        criteria = with_loader_criteria(
            TenantScoped,
            lambda cls: cls.organization_id == organization_id,
            include_aliases=True
        )
    execute_state.statement = execute_state.statement.options(criteria)


@event.listens_for(TenantSession, "before_flush")
def _check_tenant_writes(session, flush_context, instances):
    context = get_tenant_context(session)
    if context.bypass_rls:
        return

    for obj in session.new:
        if isinstance(obj, TenantScoped) and obj.organization_id is None:
            obj.organization_id = context.organization_id

    for obj in chain(session.new, session.dirty, session.deleted):
        if not isinstance(obj, TenantScoped):
            continue
        if context.allows(obj.organization_id):
            continue
        log_security_event(
            "tenant_isolation_violation",
            {
                "organization_id": context.organization_id,
                "row_organization_id": obj.organization_id,
                "model": type(obj).__name__,
            },
            logger
        )
        raise TenantIsolationError(
            f"Write to {type(obj).__name__} outside the current organization"
        )
