"""SQLAlchemy models for the commission desk.

All ``DateTime`` columns hold naive UTC instants.
"""
from __future__ import annotations

from datetime import datetime
from datetime import timezone as dt_timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commissiondesk.core.tiers import CalculationMethod, TriggerType
from commissiondesk.database import Base

CALCULATION_METHOD_ENUM = tuple(method.value for method in CalculationMethod)
TRIGGER_TYPE_ENUM = tuple(trigger.value for trigger in TriggerType)


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc).replace(tzinfo=None)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    locations: Mapped[list["Location"]] = relationship(back_populates="organization")
    trainers: Mapped[list["Trainer"]] = relationship(back_populates="organization")


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    organization: Mapped[Organization] = relationship(back_populates="locations")


class CommissionProfile(Base):
    __tablename__ = "commission_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    calculation_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CalculationMethod.PROGRESSIVE.value
    )
    trigger_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TriggerType.SESSION_COUNT.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )

    tiers: Mapped[list["CommissionTier"]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="CommissionTier.tier_level",
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_commission_profile_org_name"),
        CheckConstraint(
            _in_clause("calculation_method", CALCULATION_METHOD_ENUM),
            name="ck_commission_profiles_method_valid",
        ),
        CheckConstraint(
            _in_clause("trigger_type", TRIGGER_TYPE_ENUM),
            name="ck_commission_profiles_trigger_valid",
        ),
    )


class CommissionTier(Base):
    __tablename__ = "commission_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        ForeignKey("commission_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier_level: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    session_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sales_threshold: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    session_commission_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    session_flat_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    sales_commission_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    sales_flat_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    tier_bonus: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    profile: Mapped[CommissionProfile] = relationship(back_populates="tiers")

    __table_args__ = (
        UniqueConstraint("profile_id", "tier_level", name="uq_commission_tier_profile_level"),
        CheckConstraint("tier_level >= 1", name="ck_commission_tiers_level_positive"),
    )


class Trainer(Base):
    __tablename__ = "trainers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int | None] = mapped_column(
        ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    commission_profile_id: Mapped[int | None] = mapped_column(
        ForeignKey("commission_profiles.id", ondelete="SET NULL"), nullable=True
    )

    organization: Mapped[Organization] = relationship(back_populates="trainers")
    location: Mapped[Location | None] = relationship()
    commission_profile: Mapped[CommissionProfile | None] = relationship()


class TrainingSession(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trainer_id: Mapped[int] = mapped_column(
        ForeignKey("trainers.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int | None] = mapped_column(
        ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )
    session_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    session_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    validated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    trainer: Mapped[Trainer] = relationship()

    __table_args__ = (
        Index("idx_sessions_trainer_date", "trainer_id", "session_date"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sales_attributed_to_id: Mapped[int | None] = mapped_column(
        ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sales_attributed_to2_id: Mapped[int | None] = mapped_column(
        ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True, index=True
    )


class CommissionCalculation(Base):
    __tablename__ = "commission_calculations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    trainer_id: Mapped[int] = mapped_column(
        ForeignKey("trainers.id", ondelete="RESTRICT"), nullable=False
    )
    profile_id: Mapped[int | None] = mapped_column(
        ForeignKey("commission_profiles.id", ondelete="SET NULL"), nullable=True
    )
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    calculation_method: Mapped[str] = mapped_column(String(20), nullable=False)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_session_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    sales_volume: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    session_commission: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    sales_commission: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    tier_bonus: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    total_commission: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    tier_reached: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculation_snapshot: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    trainer: Mapped[Trainer] = relationship()
    profile: Mapped[CommissionProfile | None] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "trainer_id", "period_start", "period_end", name="uq_commission_calculation_period"
        ),
        Index("idx_commission_calculations_trainer_end", "trainer_id", "period_end"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
