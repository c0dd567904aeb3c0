"""
Multi-Tenancy Support Module

Every company account is a tenant; all cases, call logs, employees and column
configurations are partitioned by tenant id. The tenant is always passed
explicitly; there is no ambient "current tenant".
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from enum import Enum

from .errors import TenantNotFound, ValidationError
from .storage import StorageInterface


TENANT_KEY = "tenant_id"


class TenantStatus(Enum):
    """Tenant account status"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass
class Tenant:
    """A company account using the recovery platform"""
    id: str
    name: str
    subdomain: str
    status: TenantStatus = TenantStatus.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'name': self.name,
            'subdomain': self.subdomain,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'settings': self.settings
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tenant':
        """Create Tenant from dictionary"""
        return cls(
            id=data['id'],
            name=data['name'],
            subdomain=data['subdomain'],
            status=TenantStatus(data.get('status', 'active')),
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            settings=data.get('settings') or {}
        )


class TenantScopedStorage(StorageInterface):
    """
    Storage view bound to one tenant.

    Writes are stamped with the tenant id and every read is filtered by it, so
    a component holding this view cannot reach another tenant's rows even
    when it knows their ids.
    """

    def __init__(self, inner_storage: StorageInterface, tenant_id: str):
        if not tenant_id:
            raise ValidationError("tenant_id is required")
        self.inner = inner_storage
        self.tenant_id = tenant_id

    def _stamp(self, data: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(data)
        data[TENANT_KEY] = self.tenant_id
        return data

    def _owned(self, data: Optional[Dict[str, Any]]) -> bool:
        return data is not None and data.get(TENANT_KEY) == self.tenant_id

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        existing = self.inner.load(table, record_id)
        if existing is not None and not self._owned(existing):
            raise PermissionError(f"Record {record_id} belongs to another tenant")
        self.inner.save(table, record_id, self._stamp(data))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        result = self.inner.load(table, record_id)
        if not self._owned(result):
            return None
        return result

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        return self.inner.find(table, {TENANT_KEY: self.tenant_id})

    def delete(self, table: str, record_id: str) -> bool:
        if not self._owned(self.inner.load(table, record_id)):
            return False
        return self.inner.delete(table, record_id)

    def exists(self, table: str, record_id: str) -> bool:
        return self._owned(self.inner.load(table, record_id))

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self.inner.find(table, self._stamp(filters))

    def compare_and_update(self, table: str, record_id: str,
                           expected: Dict[str, Any], data: Dict[str, Any]) -> bool:
        return self.inner.compare_and_update(
            table, record_id, self._stamp(expected), self._stamp(data)
        )

    def count(self, table: str) -> int:
        return len(self.load_all(table))

    def clear_table(self, table: str) -> None:
        raise PermissionError("Cannot clear a shared table from a tenant scope")

    def close(self) -> None:
        # The inner storage is shared with other tenants
        pass

    def begin_transaction(self) -> None:
        self.inner.begin_transaction()

    def commit(self) -> None:
        self.inner.commit()

    def rollback(self) -> None:
        self.inner.rollback()


class TenantManager:
    """Registry of tenants"""

    TENANT_TABLE = "tenants"

    def __init__(self, storage: StorageInterface):
        # Raw storage: the registry itself is not tenant scoped
        self.storage = storage

    def create_tenant(self, name: str, subdomain: str,
                      settings: Optional[Dict[str, Any]] = None,
                      tenant_id: Optional[str] = None) -> Tenant:
        """Create a new tenant"""
        subdomain = subdomain.strip().lower()
        if len(subdomain) < 3:
            raise ValidationError("Subdomain must be at least 3 characters")
        if self.get_tenant_by_subdomain(subdomain):
            raise ValidationError(f"Subdomain '{subdomain}' already exists")

        tenant = Tenant(
            id=tenant_id or str(uuid.uuid4()),
            name=name,
            subdomain=subdomain,
            settings=settings or {}
        )
        self.storage.save(self.TENANT_TABLE, tenant.id, tenant.to_dict())
        return tenant

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID"""
        data = self.storage.load(self.TENANT_TABLE, tenant_id)
        if data:
            return Tenant.from_dict(data)
        return None

    def get_tenant_by_subdomain(self, subdomain: str) -> Optional[Tenant]:
        """Get tenant by subdomain"""
        tenants = self.storage.find(self.TENANT_TABLE, {'subdomain': subdomain.lower()})
        if tenants:
            return Tenant.from_dict(tenants[0])
        return None

    def list_tenants(self, status: Optional[TenantStatus] = None) -> List[Tenant]:
        """List tenants, optionally filtered by status"""
        filters = {}
        if status is not None:
            filters['status'] = status.value
        return [Tenant.from_dict(data) for data in self.storage.find(self.TENANT_TABLE, filters)]

    def set_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        """Change tenant status"""
        tenant = self.get_tenant(tenant_id)
        if not tenant:
            raise TenantNotFound(f"Tenant {tenant_id} not found", tenant_id)
        tenant.status = status
        tenant.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.TENANT_TABLE, tenant.id, tenant.to_dict())
        return tenant

    def deactivate_tenant(self, tenant_id: str) -> Tenant:
        """Deactivate a tenant"""
        return self.set_status(tenant_id, TenantStatus.INACTIVE)

    def require_active(self, tenant_id: str) -> Tenant:
        """Resolve a tenant that may run engine operations"""
        tenant = self.get_tenant(tenant_id)
        if not tenant or not tenant.is_active:
            raise TenantNotFound(f"Active tenant {tenant_id} not found", tenant_id)
        return tenant

    def scoped(self, tenant_id: str, storage: Optional[StorageInterface] = None) -> TenantScopedStorage:
        """Tenant-bound view of the shared storage"""
        return TenantScopedStorage(storage or self.storage, tenant_id)
