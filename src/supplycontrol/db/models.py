"""SQLAlchemy models for persisted supply control state.

Column order is part of the persisted layout: new columns may be
appended, existing ones must not be reordered or retyped. uint256 values
are stored as decimal strings since no SQL integer type is wide enough.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supplycontrol.db.base import Base, utcnow

UINT256_DIGITS = 78


class SupplyControllerRow(Base):
    """One registered controller: limit config, quota state and policy."""

    __tablename__ = "supply_controllers"

    identity: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    # Limit configuration
    capacity: Mapped[str] = mapped_column(String(UINT256_DIGITS), nullable=False)
    refill_rate: Mapped[str] = mapped_column(String(UINT256_DIGITS), nullable=False)
    # Quota state
    available: Mapped[str] = mapped_column(String(UINT256_DIGITS), default="0", nullable=False)
    last_update_time: Mapped[str] = mapped_column(String(UINT256_DIGITS), default="0", nullable=False)
    # Destination policy
    allow_any_destination: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    whitelist: Mapped[list["WhitelistEntryRow"]] = relationship(
        "WhitelistEntryRow", back_populates="controller", cascade="all, delete-orphan"
    )


class WhitelistEntryRow(Base):
    """Account a controller may mint to or burn from."""

    __tablename__ = "whitelist_entries"

    controller_id: Mapped[int] = mapped_column(
        ForeignKey("supply_controllers.id", ondelete="CASCADE"), nullable=False
    )
    account: Mapped[str] = mapped_column(String(255), nullable=False)

    controller: Mapped["SupplyControllerRow"] = relationship("SupplyControllerRow", back_populates="whitelist")

    __table_args__ = (Index("ix_whitelist_controller_account", "controller_id", "account", unique=True),)


class RoleGrantRow(Base):
    """Role held by an identity."""

    __tablename__ = "role_grants"

    identity: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (Index("ix_role_grants_identity_role", "identity", "role", unique=True),)


class AuditEventRow(Base):
    """Append-only audit trail of registry changes."""

    __tablename__ = "audit_events"

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    emitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
