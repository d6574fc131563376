"""
Tenant scoping for every care transition read and write.

The tenant is always an explicit argument. There is no ambient or
session-level tenant state anywhere in the engine.
"""
from __future__ import annotations

from sqlalchemy.orm import Query, Session

MAX_TENANT_KEY_LENGTH = 64


class TenantScopeError(ValueError):
    """Raised for a missing/oversized tenant key or a row owned by another tenant."""


def require_tenant_key(value: str | None) -> str:
    tenant_key = (value or "").strip()
    if not tenant_key:
        raise TenantScopeError("Tenant key is required")
    if len(tenant_key) > MAX_TENANT_KEY_LENGTH:
        raise TenantScopeError(f"Tenant key exceeds {MAX_TENANT_KEY_LENGTH} characters")
    return tenant_key


def tenant_query(session: Session, model, tenant_key: str, *entities) -> Query:
    """Start a query on `model` (plus any joined `entities`) limited to `tenant_key`'s rows."""
    return session.query(model, *entities).filter(model.tenant_key == require_tenant_key(tenant_key))


def ensure_tenant(row, tenant_key: str):
    if row is not None and row.tenant_key != tenant_key:
        raise TenantScopeError("Row does not belong to the requesting tenant")
    return row
