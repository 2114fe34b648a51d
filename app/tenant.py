from flask import g, request


DEFAULT_TENANT_ID = "tenant-default"
TENANT_HEADER = "X-Tenant-Id"


def normalize_tenant_id(value: str | None) -> str | None:
    tenant_id = str(value or "").strip()
    return tenant_id or None


def tenant_from_headers() -> str:
    return normalize_tenant_id(request.headers.get(TENANT_HEADER)) or DEFAULT_TENANT_ID


def current_tenant_id() -> str | None:
    return normalize_tenant_id(getattr(g, "tenant_id", None))


def scoped_tenant_id(value: str | None = None) -> str:
    return normalize_tenant_id(value) or current_tenant_id() or DEFAULT_TENANT_ID
