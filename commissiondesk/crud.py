"""Database access helpers."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, selectinload

from commissiondesk.models import (
    AuditLog,
    CommissionCalculation,
    CommissionProfile,
    Organization,
    Payment,
    Trainer,
    TrainingSession,
)

CALCULATION_KEY = ("trainer_id", "period_start", "period_end")


def get_trainer(db: Session, trainer_id: int) -> Trainer | None:
    return db.get(Trainer, trainer_id)


def get_organization(db: Session, organization_id: int) -> Organization | None:
    return db.get(Organization, organization_id)


def list_active_trainers(
    db: Session,
    organization_id: int,
    location_id: int | None = None,
) -> Sequence[Trainer]:
    stmt = select(Trainer).where(
        Trainer.organization_id == organization_id,
        Trainer.active.is_(True),
    )
    if location_id is not None:
        stmt = stmt.where(Trainer.location_id == location_id)
    stmt = stmt.order_by(Trainer.name, Trainer.id)
    return db.execute(stmt).scalars().all()


def get_profile_with_tiers(db: Session, profile_id: int) -> CommissionProfile | None:
    stmt = (
        select(CommissionProfile)
        .options(selectinload(CommissionProfile.tiers))
        .where(CommissionProfile.id == profile_id)
    )
    return db.execute(stmt).scalars().first()


def list_qualifying_sessions(
    db: Session,
    trainer_id: int,
    start: datetime,
    end: datetime,
    location_ids: Sequence[int] | None = None,
) -> Sequence[TrainingSession]:
    """Validated, non-cancelled sessions with ``start <= session_date < end``."""

    stmt = select(TrainingSession).where(
        TrainingSession.trainer_id == trainer_id,
        TrainingSession.session_date >= start,
        TrainingSession.session_date < end,
        TrainingSession.validated.is_(True),
        TrainingSession.cancelled.is_(False),
    )
    if location_ids:
        stmt = stmt.where(TrainingSession.location_id.in_(list(location_ids)))
    stmt = stmt.order_by(TrainingSession.session_date.asc(), TrainingSession.id.asc())
    return db.execute(stmt).scalars().all()


def list_attributed_payments(
    db: Session,
    trainer_id: int,
    start: datetime,
    end: datetime,
) -> Sequence[Payment]:
    stmt = (
        select(Payment)
        .where(
            or_(
                Payment.sales_attributed_to_id == trainer_id,
                Payment.sales_attributed_to2_id == trainer_id,
            ),
            Payment.payment_date >= start,
            Payment.payment_date < end,
        )
        .order_by(Payment.payment_date.asc(), Payment.id.asc())
    )
    return db.execute(stmt).scalars().all()


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Atomic commission upsert is not supported on {dialect!r}.")


def upsert_commission_calculation(db: Session, values: dict) -> CommissionCalculation:
    """Insert or overwrite the row keyed by trainer and period in one statement.

    Does not commit; the caller owns the transaction.
    """

    insert = _dialect_insert(db)
    stmt = insert(CommissionCalculation).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(CALCULATION_KEY),
        set_={key: stmt.excluded[key] for key in values if key not in CALCULATION_KEY},
    )
    db.execute(stmt)

    lookup = (
        select(CommissionCalculation)
        .where(
            CommissionCalculation.trainer_id == values["trainer_id"],
            CommissionCalculation.period_start == values["period_start"],
            CommissionCalculation.period_end == values["period_end"],
        )
        .execution_options(populate_existing=True)
    )
    return db.execute(lookup).scalars().one()


def count_calculations(db: Session, trainer_id: int) -> int:
    stmt = select(func.count(CommissionCalculation.id)).where(
        CommissionCalculation.trainer_id == trainer_id
    )
    return db.execute(stmt).scalar_one()


def list_calculation_history(db: Session, trainer_id: int, limit: int = 12) -> Sequence[CommissionCalculation]:
    stmt = (
        select(CommissionCalculation)
        .options(selectinload(CommissionCalculation.profile))
        .where(CommissionCalculation.trainer_id == trainer_id)
        .order_by(CommissionCalculation.period_end.desc(), CommissionCalculation.id.desc())
        .limit(limit)
    )
    return db.execute(stmt).scalars().all()


def log_action(db: Session, actor: str | None, action: str, details: dict | None = None) -> AuditLog:
    """Stage an audit entry; committed with the caller's transaction."""

    entry = AuditLog(
        actor=actor,
        action=action,
        details=json.dumps(details or {}),
    )
    db.add(entry)
    return entry


def list_audit_entries(db: Session, action: str | None = None) -> Sequence[AuditLog]:
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return db.execute(stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())).scalars().all()
