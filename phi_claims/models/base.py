"""
SQLAlchemy Base Model
Source: https://docs.sqlalchemy.org/en/20/orm/declarative_styles.html
Verified: 2026-10-01
"""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TENANT_ID_MAX_LENGTH = 64


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimeStampedModel:
    """
    Mixin for models with created_at and updated_at timestamps.

    Timestamps are always written explicitly by the store so the ORM row and
    the domain record agree; the server defaults cover manual inserts.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TenantOwnedModel:
    """
    Mixin for row-filtered tables.

    Every table using this mixin carries a row-level security policy keyed
    on the ``app.tenant_id`` transaction setting.
    """

    tenant_id: Mapped[str] = mapped_column(
        String(TENANT_ID_MAX_LENGTH),
        nullable=False,
        index=True,
        comment="Owning tenant ID",
    )
