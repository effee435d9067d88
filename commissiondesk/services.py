"""Application service layer for commission calculation."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commissiondesk import crud
from commissiondesk.core.periods import MonthPeriod, PeriodBounds, resolve_month_bounds_utc
from commissiondesk.core.tiers import (
    ZERO,
    CommissionResult,
    PeriodFacts,
    ProfileSpec,
    TierSpec,
    compute_commission,
)
from commissiondesk.errors import (
    ConfigurationError,
    NoProfileAssignedError,
    OrganizationNotFoundError,
    TrainerNotFoundError,
)
from commissiondesk.models import CommissionCalculation, CommissionProfile, Trainer

logger = logging.getLogger(__name__)

HISTORY_LIMIT = int(os.getenv("COMMISSION_HISTORY_LIMIT", "12"))

PeriodInput = Union[PeriodBounds, MonthPeriod, Tuple[datetime, datetime]]


@dataclass(frozen=True)
class SalesFacts:
    volume: Decimal = ZERO
    count: int = 0


SalesSource = Callable[[int, PeriodBounds], SalesFacts]


def payments_sales_source(db: Session) -> SalesSource:
    """Sales volume from payments attributed to the trainer.

    A payment attributed to two different trainers counts half toward each.
    """

    def _source(trainer_id: int, period: PeriodBounds) -> SalesFacts:
        volume = ZERO
        payments = crud.list_attributed_payments(db, trainer_id, period.naive_start, period.naive_end)
        for payment in payments:
            amount = Decimal(str(payment.amount or 0))
            if amount < ZERO:
                raise ConfigurationError(f"Payment {payment.id} has a negative amount.")
            first, second = payment.sales_attributed_to_id, payment.sales_attributed_to2_id
            shared = first is not None and second is not None and first != second
            volume += amount / 2 if shared else amount
        return SalesFacts(volume=volume, count=len(payments))

    return _source


class SessionAggregator:
    """Reduces a trainer's qualifying sessions to :class:`PeriodFacts`."""

    def __init__(self, db: Session, sales_source: SalesSource | None = None) -> None:
        self.db = db
        self.sales_source = sales_source or payments_sales_source(db)

    def aggregate_period_facts(
        self,
        trainer_id: int,
        period: PeriodBounds,
        location_ids: Sequence[int] | None = None,
        include_sales: bool = False,
    ) -> PeriodFacts:
        sessions = crud.list_qualifying_sessions(
            self.db, trainer_id, period.naive_start, period.naive_end, location_ids
        )
        values: list[Decimal] = []
        for session in sessions:
            value = Decimal(str(session.session_value or 0))
            if value < ZERO:
                raise ConfigurationError(
                    f"Session {session.id} for trainer {trainer_id} has a negative value ({value})."
                )
            values.append(value)

        sales = self.sales_source(trainer_id, period) if include_sales else SalesFacts()
        return PeriodFacts.from_session_values(values, sales_volume=sales.volume, sales_count=sales.count)


def profile_to_spec(profile: CommissionProfile) -> ProfileSpec:
    tiers = tuple(
        TierSpec(
            tier_level=tier.tier_level,
            name=tier.name,
            session_threshold=tier.session_threshold,
            sales_threshold=tier.sales_threshold,
            session_commission_percent=tier.session_commission_percent,
            session_flat_fee=tier.session_flat_fee,
            sales_commission_percent=tier.sales_commission_percent,
            sales_flat_fee=tier.sales_flat_fee,
            tier_bonus=tier.tier_bonus,
        )
        for tier in profile.tiers
    )
    try:
        return ProfileSpec(
            calculation_method=profile.calculation_method,
            trigger_type=profile.trigger_type,
            tiers=tiers,
            profile_id=profile.id,
            name=profile.name,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Commission profile '{profile.name}' is misconfigured: {exc}") from exc


class ProfileResolver:
    """Loads the active commission profile assigned to a trainer."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_profile(self, trainer_id: int) -> ProfileSpec:
        trainer = crud.get_trainer(self.db, trainer_id)
        if trainer is None:
            raise TrainerNotFoundError(trainer_id)
        return self.resolve_for_trainer(trainer)

    def resolve_for_trainer(self, trainer: Trainer) -> ProfileSpec:
        if trainer.commission_profile_id is None:
            raise NoProfileAssignedError(trainer.id)
        profile = crud.get_profile_with_tiers(self.db, trainer.commission_profile_id)
        if profile is None:
            raise NoProfileAssignedError(trainer.id)
        if not profile.is_active:
            raise NoProfileAssignedError(
                trainer.id, f"commission profile '{profile.name}' is inactive"
            )
        return profile_to_spec(profile)


class CalculationRecorder:
    """Persists calculations keyed by trainer and period."""

    def __init__(self, db: Session, audit: bool = True) -> None:
        self.db = db
        self.audit = audit

    def save_calculation(
        self,
        trainer: Trainer,
        period: PeriodBounds,
        profile: ProfileSpec,
        result: CommissionResult,
        actor: str | None = None,
    ) -> CommissionCalculation:
        values = {
            "trainer_id": trainer.id,
            "organization_id": trainer.organization_id,
            "profile_id": profile.profile_id,
            "period_start": period.naive_start,
            "period_end": period.naive_end,
            "calculation_method": result.calculation_method.value,
            "total_sessions": result.total_sessions,
            "total_sales_count": result.total_sales_count,
            "total_session_value": result.total_session_value,
            "sales_volume": result.sales_volume,
            "session_commission": result.session_commission,
            "sales_commission": result.sales_commission,
            "tier_bonus": result.tier_bonus,
            "total_commission": result.total_commission,
            "tier_reached": result.tier_reached,
            "calculation_snapshot": _dump_snapshot(result),
            "calculated_at": datetime.now(timezone.utc).replace(tzinfo=None),
        }
        try:
            record = crud.upsert_commission_calculation(self.db, values)
            if self.audit:
                crud.log_action(
                    self.db,
                    actor,
                    "commission.calculated",
                    {
                        "trainer_id": trainer.id,
                        "period_start": period.start.isoformat(),
                        "period_end": period.end.isoformat(),
                        "total_commission": str(result.total_commission),
                        "tier_reached": result.tier_reached,
                    },
                )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(
            "Recorded commission for trainer %s (%s to %s): %s",
            trainer.id,
            period.start.isoformat(),
            period.end.isoformat(),
            result.total_commission,
        )
        return record

    def get_history(self, trainer_id: int, limit: int = HISTORY_LIMIT) -> Sequence[CommissionCalculation]:
        return crud.list_calculation_history(self.db, trainer_id, limit)


def _dump_snapshot(result: CommissionResult) -> str:
    return json.dumps(result.snapshot())


@dataclass(frozen=True)
class TrainerReportRow:
    """One trainer's line in an organization report; ``error`` is set instead of failing the batch."""

    trainer_id: int
    trainer_name: str
    trainer_email: str
    location_name: str | None
    result: CommissionResult | None = None
    error: str | None = None

    @property
    def total_commission(self) -> Decimal:
        return self.result.total_commission if self.result else ZERO

    @property
    def total_sessions(self) -> int:
        return self.result.total_sessions if self.result else 0


@dataclass(frozen=True)
class _Computation:
    trainer: Trainer
    period: PeriodBounds
    profile: ProfileSpec
    result: CommissionResult


class CommissionService:
    """Coordinates period, profile, activity and persistence for commissions."""

    def __init__(
        self,
        db: Session,
        aggregator: SessionAggregator | None = None,
        resolver: ProfileResolver | None = None,
        recorder: CalculationRecorder | None = None,
    ) -> None:
        self.db = db
        self.aggregator = aggregator or SessionAggregator(db)
        self.resolver = resolver or ProfileResolver(db)
        self.recorder = recorder or CalculationRecorder(db)

    def resolve_period(self, trainer: Trainer, period: PeriodInput) -> PeriodBounds:
        if isinstance(period, PeriodBounds):
            return period
        if isinstance(period, MonthPeriod):
            timezone_name = trainer.organization.timezone if trainer.organization else None
            return resolve_month_bounds_utc(period.year, period.month, timezone_name)
        if isinstance(period, tuple) and len(period) == 2:
            return PeriodBounds.from_datetimes(*period)
        raise ConfigurationError(f"Unsupported period {period!r}.")

    def _compute(
        self,
        trainer: Trainer,
        period: PeriodInput,
        location_ids: Sequence[int] | None,
    ) -> _Computation:
        bounds = self.resolve_period(trainer, period)
        profile = self.resolver.resolve_for_trainer(trainer)
        facts = self.aggregator.aggregate_period_facts(
            trainer.id, bounds, location_ids, include_sales=profile.requires_sales
        )
        return _Computation(trainer, bounds, profile, compute_commission(facts, profile))

    def _get_trainer(self, trainer_id: int) -> Trainer:
        trainer = crud.get_trainer(self.db, trainer_id)
        if trainer is None:
            raise TrainerNotFoundError(trainer_id)
        return trainer

    def preview(
        self,
        trainer_id: int,
        period: PeriodInput,
        location_ids: Sequence[int] | None = None,
    ) -> CommissionResult:
        """Compute without writing anything."""

        return self._compute(self._get_trainer(trainer_id), period, location_ids).result

    def calculate_and_record(
        self,
        trainer_id: int,
        period: PeriodInput,
        location_ids: Sequence[int] | None = None,
        actor: str | None = None,
    ) -> CommissionResult:
        """Compute and upsert the result into the calculation history."""

        computation = self._compute(self._get_trainer(trainer_id), period, location_ids)
        self.recorder.save_calculation(
            computation.trainer,
            computation.period,
            computation.profile,
            computation.result,
            actor=actor,
        )
        return computation.result

    def calculate_commission(
        self,
        trainer_id: int,
        period: PeriodInput,
        save_calculation: bool = False,
        location_ids: Sequence[int] | None = None,
        actor: str | None = None,
    ) -> CommissionResult:
        if save_calculation:
            return self.calculate_and_record(trainer_id, period, location_ids, actor=actor)
        return self.preview(trainer_id, period, location_ids)

    def get_calculation_history(
        self, trainer_id: int, limit: int = HISTORY_LIMIT
    ) -> Sequence[CommissionCalculation]:
        return self.recorder.get_history(trainer_id, limit)

    def calculate_organization_commissions(
        self,
        organization_id: int,
        period: PeriodInput,
        save_calculation: bool = False,
        location_ids: Sequence[int] | None = None,
        actor: str | None = None,
    ) -> list[TrainerReportRow]:
        """Commission for every active trainer, highest earner first.

        Trainers without a usable profile are reported with an error instead of
        aborting the report.
        """

        organization = crud.get_organization(self.db, organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id)

        rows: list[TrainerReportRow] = []
        for trainer in crud.list_active_trainers(self.db, organization_id):
            location_name = trainer.location.name if trainer.location else None
            try:
                computation = self._compute(trainer, period, location_ids)
            except (NoProfileAssignedError, ConfigurationError) as exc:
                logger.warning("Skipping commission for trainer %s: %s", trainer.id, exc)
                rows.append(
                    TrainerReportRow(
                        trainer_id=trainer.id,
                        trainer_name=trainer.name,
                        trainer_email=trainer.email,
                        location_name=location_name,
                        error=str(exc),
                    )
                )
                continue
            if save_calculation:
                self.recorder.save_calculation(
                    trainer, computation.period, computation.profile, computation.result, actor=actor
                )
            rows.append(
                TrainerReportRow(
                    trainer_id=trainer.id,
                    trainer_name=trainer.name,
                    trainer_email=trainer.email,
                    location_name=location_name,
                    result=computation.result,
                )
            )

        rows.sort(key=lambda row: (-row.total_commission, row.trainer_name))
        return rows
