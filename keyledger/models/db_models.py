"""
SQLAlchemy ORM models for the service/API key ledger.

Defines the database schema for services, api_keys, and audit_logs tables.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String,
    UniqueConstraint, func
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from keyledger.models.records import MAX_NAME_LEN


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ServiceRow(Base):
    """Service record, addressed by the hash of its authority."""

    __tablename__ = "services"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    authority: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Identity administering the service"
    )
    name: Mapped[str] = mapped_column(String(MAX_NAME_LEN), nullable=False)
    default_rate_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Counters
    total_keys: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    active_keys: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # Compare-and-swap version
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    api_keys: Mapped[List["ApiKeyRow"]] = relationship(
        "ApiKeyRow",
        back_populates="service",
    )

    def __repr__(self) -> str:
        return f"<ServiceRow(address={self.address}, name={self.name})>"


class ApiKeyRow(Base):
    """API key record, addressed by hash of (service, owner, key_index)."""

    __tablename__ = "api_keys"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    service_address: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("services.address"),
        nullable=False,
        index=True
    )
    owner: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    key_index: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Metadata
    name: Mapped[str] = mapped_column(String(MAX_NAME_LEN), nullable=False)
    scopes: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    # Quota accounting
    rate_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    requests_today: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_requests: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_request_day: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Lifecycle
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    service: Mapped["ServiceRow"] = relationship("ServiceRow", back_populates="api_keys")
    audit_logs: Mapped[List["AuditLogRow"]] = relationship(
        "AuditLogRow",
        back_populates="api_key",
    )

    __table_args__ = (
        UniqueConstraint("service_address", "key_index", name="uq_api_key_service_index"),
    )

    def __repr__(self) -> str:
        return f"<ApiKeyRow(address={self.address}, name={self.name}, index={self.key_index})>"


class AuditLogRow(Base):
    """Audit log for service and API key state transitions."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )
    service_address: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("services.address"),
        nullable=False
    )
    key_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("api_keys.address"),
        nullable=True
    )
    action: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="service_initialized, created, revoked, reactivated, ..."
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    api_key: Mapped[Optional["ApiKeyRow"]] = relationship(
        "ApiKeyRow",
        back_populates="audit_logs"
    )

    __table_args__ = (
        Index("idx_audit_action", "action"),
        Index("idx_audit_key_address", "key_address"),
    )
