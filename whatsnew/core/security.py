"""Tenant identifier hashing.

Pages carry a tenant-scoped token for correlation and debugging
(``data-tenant-id`` attributes, analytics ``tenant_id``).  The raw tenant
identifier never reaches client-visible markup; only the namespaced
SHA-256 digest produced here does.
"""
from __future__ import annotations

import hashlib

TENANT_HASH_NAMESPACE = "whats-new"
TENANT_HASH_PREFIX = "sha256:"


def hash_tenant_id(tenant_id: str | None, namespace: str = TENANT_HASH_NAMESPACE) -> str | None:
    """Return ``"sha256:<hex>"`` for *tenant_id*, or ``None`` when it is blank.

    The digest covers ``f"{namespace}:{tenant_id.strip()}"`` so the same
    tenant always maps to the same token.
    """
    if tenant_id is None:
        return None

    normalized = tenant_id.strip()
    if not normalized:
        return None

    payload = f"{namespace}:{normalized}".encode("utf-8")
    return f"{TENANT_HASH_PREFIX}{hashlib.sha256(payload).hexdigest()}"
