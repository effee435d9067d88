"""Pydantic schemas for API requests and responses."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from commissiondesk.core.periods import MonthPeriod, PeriodBounds, parse_month
from commissiondesk.core.tiers import CommissionResult
from commissiondesk.errors import ConfigurationError


class CalculateRequest(BaseModel):
    """Either ``month`` (YYYY-MM, organization-local) or an explicit UTC range."""

    trainer_id: int = Field(..., ge=1)
    month: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    save_calculation: bool = False
    location_ids: Optional[list[int]] = None

    @field_validator("month")
    def validate_month(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        try:
            parse_month(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode="after")
    def check_period(self) -> "CalculateRequest":
        has_range = self.period_start is not None or self.period_end is not None
        if self.month and has_range:
            raise ValueError("Provide either month or period_start/period_end, not both.")
        if not self.month:
            if self.period_start is None or self.period_end is None:
                raise ValueError("Provide month or both period_start and period_end.")
            # naive values are read as UTC
            PeriodBounds.from_datetimes(self.period_start, self.period_end)
        return self

    def to_period(self) -> MonthPeriod | PeriodBounds:
        if self.month:
            return parse_month(self.month)
        return PeriodBounds.from_datetimes(self.period_start, self.period_end)


class TierBreakdownRead(BaseModel):
    tier_level: int
    reached: bool
    sessions: int
    session_value: float
    sales_value: float
    session_commission: float
    sales_commission: float
    bonus: float


class CommissionResultRead(BaseModel):
    calculation_method: str
    session_commission: float
    sales_commission: float
    tier_bonus: float
    total_commission: float
    tier_reached: int
    total_sessions: int
    total_session_value: float
    sales_volume: float
    total_sales_count: int
    breakdown: list[TierBreakdownRead] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: CommissionResult) -> "CommissionResultRead":
        return cls(
            calculation_method=result.calculation_method.value,
            session_commission=float(result.session_commission),
            sales_commission=float(result.sales_commission),
            tier_bonus=float(result.tier_bonus),
            total_commission=float(result.total_commission),
            tier_reached=result.tier_reached,
            total_sessions=result.total_sessions,
            total_session_value=float(result.total_session_value),
            sales_volume=float(result.sales_volume),
            total_sales_count=result.total_sales_count,
            breakdown=[TierBreakdownRead(**item.as_dict()) for item in result.breakdown],
        )


class CalculateResponse(BaseModel):
    trainer_id: int
    period_start: datetime
    period_end: datetime
    saved: bool
    result: CommissionResultRead


class CalculationRead(BaseModel):
    id: int
    trainer_id: int
    profile_id: Optional[int]
    period_start: datetime
    period_end: datetime
    calculation_method: str
    total_sessions: int
    total_sales_count: int
    total_session_value: float
    sales_volume: float
    session_commission: float
    sales_commission: float
    tier_bonus: float
    total_commission: float
    tier_reached: int
    calculation_snapshot: dict[str, Any] = Field(default_factory=dict)
    calculated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("calculation_snapshot", mode="before")
    def load_snapshot(cls, value: Any) -> Any:
        if value in (None, ""):
            return {}
        if isinstance(value, str):
            return json.loads(value)
        return value


class TrainerReportRowRead(BaseModel):
    trainer_id: int
    trainer_name: str
    trainer_email: str
    location_name: Optional[str]
    total_commission: float
    total_sessions: int
    tier_reached: int
    error: Optional[str] = None
    result: Optional[CommissionResultRead] = None


class OrganizationReportRead(BaseModel):
    organization_id: int
    month: str
    period_start: datetime
    period_end: datetime
    total_commission: float
    trainers: list[TrainerReportRowRead]
