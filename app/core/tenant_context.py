"""Tenant context for log correlation.

Webhooks carry no tenant of their own; the tenant is known once the owning
channel instance is resolved, and is bound here for the rest of the request.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for tenant_id
tenant_id_var: ContextVar[Optional[int]] = ContextVar("tenant_id", default=None)


def get_tenant_context() -> int | None:
    """Get the current tenant context.

    Returns:
        Current tenant ID or None
    """
    return tenant_id_var.get()


@contextmanager
def tenant_scope(tenant_id: int | None) -> Iterator[None]:
    """Bind a tenant for the duration of a block, restoring the previous one after."""
    token = tenant_id_var.set(tenant_id)
    try:
        yield
    finally:
        tenant_id_var.reset(token)
