"""
Tenant registry.

Not row-filtered: it holds only tenant ids, which reconciliation jobs use to
visit every tenant through a tenant-scoped transaction.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from phi_claims.models.base import TENANT_ID_MAX_LENGTH, Base


class Tenant(Base):
    """Known tenant identifier."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(TENANT_ID_MAX_LENGTH), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id})>"
