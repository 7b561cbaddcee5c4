from __future__ import annotations

from flask import g, request, session


DEFAULT_TENANT_ID = "tenant-demo"


def normalize_tenant_id(value: object) -> str | None:
    tenant_id = str(value or "").strip()
    return tenant_id or None


def current_tenant_id() -> str | None:
    """Workshop owning the current request: session first, then the value resolved by the app hook."""
    return normalize_tenant_id(session.get("tenant_id")) or normalize_tenant_id(getattr(g, "tenant_id", None))


def workshop_tenant_id() -> str:
    return current_tenant_id() or DEFAULT_TENANT_ID


def resolve_request_tenant() -> None:
    session_tenant = normalize_tenant_id(session.get("tenant_id"))
    if session_tenant:
        g.tenant_id = session_tenant
        return

    # Header override is meant for API clients and tests running with auth disabled.
    header_tenant = normalize_tenant_id(request.headers.get("X-Tenant-Id"))
    g.tenant_id = header_tenant or DEFAULT_TENANT_ID
