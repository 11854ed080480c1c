"""Explicit tenant context passed into every service call."""

from dataclasses import dataclass
from enum import Enum


class PrincipalRole(str, Enum):
    """Who is acting on behalf of a tenant."""

    ADMIN = "admin"  # back-office operator acting on a tenant
    CUSTOMER = "customer"  # portal user of the tenant itself


@dataclass(frozen=True, slots=True)
class TenantContext:
    """The tenant a request operates on and the principal behind it.

    Built once per request at the route boundary. Services compare
    ``tenant_id`` against the ``tenant_id`` of every row they touch.
    """

    tenant_id: str
    principal: str
    role: PrincipalRole

    @classmethod
    def for_admin(cls, tenant_id: str, admin_email: str) -> "TenantContext":
        return cls(tenant_id=tenant_id, principal=admin_email, role=PrincipalRole.ADMIN)

    @classmethod
    def for_customer(cls, tenant_id: str, customer_email: str) -> "TenantContext":
        return cls(tenant_id=tenant_id, principal=customer_email, role=PrincipalRole.CUSTOMER)

    @property
    def is_admin(self) -> bool:
        return self.role is PrincipalRole.ADMIN
