"""
Tenant Isolation Gate: explicit tenant scope for every unit of work.

WHY: Every inventory, order, invoice and payment row belongs to exactly one
organization. The tenant is resolved once per operation (from the
authenticated request) and handed to services as a TenantScope object.
Services only reach tenant-owned tables through the scope, so a forgotten
filter cannot leak another tenant's rows.

SECURITY INVARIANTS:
1. There is no default tenant: a missing, unknown or inactive org fails closed
2. The tenant is never inferred from rows already fetched
3. Rows owned by another tenant look exactly like missing rows
4. On PostgreSQL the tenant is also bound to the DB session with a
   transaction-local setting (row-level security policies read it), so it
   cannot leak to the next user of a pooled connection
5. Once a scope is active on a session, every transaction that session
   begins (including the refresh after a commit) re-binds the setting

USAGE:
    scope = bind_tenant(org_id)
    with unit_of_work(scope):
        item = scope.require(Item, item_id)
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import event, text
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Organization
from .concurrency import lock_for_update
from .errors import NotFoundError, PreconditionError


TENANT_SETTING = "app.current_tenant_id"

# Session.info key holding the org id the session is bound to
TENANT_SESSION_KEY = "tenant_org_id"


class TenantAccessError(PreconditionError):
    """Raised when tenant context is missing or cross-tenant access is attempted."""
    pass


def _apply_tenant_setting(connection, org_id: int) -> None:
    """Write the transaction-local tenant setting (PostgreSQL only)."""
    if connection.dialect.name != "postgresql":
        return
    connection.execute(
        text("SELECT set_config(:name, :value, true)"),
        {"name": TENANT_SETTING, "value": str(org_id)},
    )


@event.listens_for(Session, "after_begin")
def _bind_tenant_on_begin(session, transaction, connection):
    # Commit/rollback drop the setting; re-bind on every new transaction
    org_id = session.info.get(TENANT_SESSION_KEY)
    if org_id is not None:
        _apply_tenant_setting(connection, org_id)


class TenantScope:
    """
    Capability object exposing only tenant-bound queries.

    Instances come from bind_tenant(); constructing one directly skips the
    organization checks and is reserved for tests and the CLI.
    """

    __slots__ = ("org_id",)

    def __init__(self, org_id: int):
        self.org_id = org_id

    def __repr__(self) -> str:
        return f"<TenantScope org_id={self.org_id}>"

    def activate(self) -> None:
        """
        Bind the tenant to the DB session.

        The org id is recorded on the session so every later transaction is
        bound as it begins; a transaction already in progress is bound now.
        """
        session = db.session
        session.info[TENANT_SESSION_KEY] = self.org_id
        if session.in_transaction():
            _apply_tenant_setting(session.connection(), self.org_id)

    def query(self, model):
        """Base query for a tenant-owned model (must have an org_id column)."""
        if db.session.info.get(TENANT_SESSION_KEY) != self.org_id:
            self.activate()
        return db.session.query(model).filter(model.org_id == self.org_id)

    def get(self, model, row_id, *, lock: bool = False):
        if row_id is None:
            return None
        query = self.query(model).filter(model.id == row_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def require(self, model, row_id, *, label: str | None = None, lock: bool = False):
        """
        Fetch a tenant-owned row or raise NotFoundError.

        A row that exists under another tenant is reported as not found and
        logged as a cross-tenant access attempt.
        """
        row = self.get(model, row_id, lock=lock)
        if row is not None:
            return row

        label = label or model.__name__
        owner = (
            db.session.query(model.org_id).filter(model.id == row_id).scalar()
            if row_id is not None
            else None
        )
        if owner is not None and owner != self.org_id:
            current_app.logger.warning(
                "Cross-tenant access denied: %s %s belongs to org %s, requested by org %s",
                label, row_id, owner, self.org_id,
            )
        raise NotFoundError(f"{label} {row_id} not found")


def bind_tenant(org_id) -> TenantScope:
    """
    Resolve an authenticated tenant id into a TenantScope.

    Raises:
        TenantAccessError: org_id missing/malformed, unknown, or inactive
    """
    if org_id is None or isinstance(org_id, bool):
        raise TenantAccessError("Tenant context not established")

    try:
        org_id = int(org_id)
    except (TypeError, ValueError):
        raise TenantAccessError("Tenant context not established")

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return TenantScope(org.id)
