"""
Tenant resolution for `/tenants/{tenant_key}/...` requests.

The tenant a request acts on is always the explicit path parameter. Users
are authenticated upstream by the internal gateway, which forwards who the
caller is as plain headers:

    X-Internal-Token  shared secret (API_INTERNAL_TOKEN) proving the gateway hop
    X-Tenant-Key      tenant the caller belongs to
    X-User-Id         the caller

With HIPAA_ENFORCEMENT on, all three are required and the forwarded tenant
must match the path. With it off the headers are optional and X-User-Id
only names the acting user.
"""
from __future__ import annotations

import hmac
import os
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from packages.tcm.tenancy import TenantScopeError, require_tenant_key

INTERNAL_TOKEN_MIN_LENGTH = 24


def _env_true(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def hipaa_enforcement_enabled() -> bool:
    return _env_true("HIPAA_ENFORCEMENT", False)


@dataclass(frozen=True)
class TenantContext:
    tenant_key: str
    user_id: str | None = None


def _tenant_or_error(raw: str | None, status_code: int) -> str:
    try:
        return require_tenant_key(raw)
    except TenantScopeError as exc:
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc


def _check_gateway_token(token: str | None) -> None:
    expected = os.getenv("API_INTERNAL_TOKEN", "").strip()
    if len(expected) < INTERNAL_TOKEN_MIN_LENGTH:
        raise HTTPException(
            status_code=500,
            detail="API is misconfigured: API_INTERNAL_TOKEN must be set when HIPAA_ENFORCEMENT is on",
        )
    if not token or not hmac.compare_digest(token.strip().encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid internal token")


def get_tenant_context(
    tenant_key: str,
    x_tenant_key: str | None = Header(default=None, alias="X-Tenant-Key"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_internal_token: str | None = Header(default=None, alias="X-Internal-Token"),
) -> TenantContext:
    """
    Resolve the tenant for the current request.

    An invalid path tenant is a 400. Under enforcement a missing or wrong
    gateway token, or missing caller headers, is a 401 and a caller from
    another tenant is a 403.
    """
    requested = _tenant_or_error(tenant_key, 400)
    user_id = (x_user_id or "").strip() or None
    if not hipaa_enforcement_enabled():
        return TenantContext(tenant_key=requested, user_id=user_id)

    _check_gateway_token(x_internal_token)
    if user_id is None or not (x_tenant_key or "").strip():
        raise HTTPException(
            status_code=401,
            detail="Missing required identity headers: X-User-Id and X-Tenant-Key",
        )
    if _tenant_or_error(x_tenant_key, 401) != requested:
        raise HTTPException(status_code=403, detail="Forbidden: cross-tenant access denied")
    return TenantContext(tenant_key=requested, user_id=user_id)


def resolve_tenant(context: TenantContext = Depends(get_tenant_context)) -> str:
    return context.tenant_key
