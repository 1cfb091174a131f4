"""
Database module for the intake pipeline.

Exports engine construction and the tenant-scoped store backends.
"""

from phi_claims.db.connection import check_db_connection, create_engine, create_session_maker
from phi_claims.db.memory_store import MemoryTenantScopedStore
from phi_claims.db.tenant_manager import (
    SQLTenantScopedStore,
    TenantScopedStore,
    TenantSession,
)

__all__ = [
    # Connection
    "create_engine",
    "create_session_maker",
    "check_db_connection",
    # Tenant-scoped store
    "TenantScopedStore",
    "TenantSession",
    "SQLTenantScopedStore",
    "MemoryTenantScopedStore",
]
