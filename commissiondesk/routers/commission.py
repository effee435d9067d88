"""Commission calculation routes."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import Response

from commissiondesk import crud
from commissiondesk.core.formatting import format_period_label
from commissiondesk.core.periods import PeriodBounds, parse_month, resolve_month_bounds_utc
from commissiondesk.dependencies import get_commission_service
from commissiondesk.errors import (
    CommissionError,
    ConfigurationError,
    NoProfileAssignedError,
    OrganizationNotFoundError,
    TrainerNotFoundError,
)
from commissiondesk.exporting import export_report_workbook
from commissiondesk.models import Organization
from commissiondesk.schemas import (
    CalculateRequest,
    CalculateResponse,
    CalculationRead,
    CommissionResultRead,
    OrganizationReportRead,
    TrainerReportRowRead,
)
from commissiondesk.services import HISTORY_LIMIT, CommissionService, TrainerReportRow

router = APIRouter(prefix="/api/commission", tags=["Commission"])


def _raise_http(exc: CommissionError) -> None:
    if isinstance(exc, (TrainerNotFoundError, OrganizationNotFoundError)):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, NoProfileAssignedError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, ConfigurationError):
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    raise exc


def _organization_period(
    service: CommissionService, organization_id: int, month: str
) -> tuple[Organization, PeriodBounds]:
    organization = crud.get_organization(service.db, organization_id)
    if organization is None:
        raise OrganizationNotFoundError(organization_id)
    target = parse_month(month)
    return organization, resolve_month_bounds_utc(target.year, target.month, organization.timezone)


def _row_read(row: TrainerReportRow) -> TrainerReportRowRead:
    return TrainerReportRowRead(
        trainer_id=row.trainer_id,
        trainer_name=row.trainer_name,
        trainer_email=row.trainer_email,
        location_name=row.location_name,
        total_commission=float(row.total_commission),
        total_sessions=row.total_sessions,
        tier_reached=row.result.tier_reached if row.result else 0,
        error=row.error,
        result=CommissionResultRead.from_result(row.result) if row.result else None,
    )


@router.post("/calculate", response_model=CalculateResponse)
def calculate(
    payload: CalculateRequest,
    service: CommissionService = Depends(get_commission_service),
    x_actor: Optional[str] = Header(None),
) -> CalculateResponse:
    try:
        trainer = crud.get_trainer(service.db, payload.trainer_id)
        if trainer is None:
            raise TrainerNotFoundError(payload.trainer_id)
        bounds = service.resolve_period(trainer, payload.to_period())
        result = service.calculate_commission(
            trainer.id,
            bounds,
            save_calculation=payload.save_calculation,
            location_ids=payload.location_ids,
            actor=x_actor,
        )
    except CommissionError as exc:
        _raise_http(exc)
    return CalculateResponse(
        trainer_id=trainer.id,
        period_start=bounds.start,
        period_end=bounds.end,
        saved=payload.save_calculation,
        result=CommissionResultRead.from_result(result),
    )


@router.get("/history/{trainer_id}", response_model=list[CalculationRead])
def history(
    trainer_id: int,
    limit: int = Query(HISTORY_LIMIT, ge=1, le=120),
    service: CommissionService = Depends(get_commission_service),
) -> list[CalculationRead]:
    if crud.get_trainer(service.db, trainer_id) is None:
        raise HTTPException(status_code=404, detail=f"Trainer {trainer_id} not found.")
    records = service.get_calculation_history(trainer_id, limit)
    return [CalculationRead.model_validate(record) for record in records]


@router.get("/report", response_model=OrganizationReportRead)
def organization_report(
    organization_id: int,
    month: str,
    location_id: Optional[int] = None,
    service: CommissionService = Depends(get_commission_service),
) -> OrganizationReportRead:
    location_ids = [location_id] if location_id is not None else None
    try:
        _, bounds = _organization_period(service, organization_id, month)
        rows = service.calculate_organization_commissions(organization_id, bounds, location_ids=location_ids)
    except CommissionError as exc:
        _raise_http(exc)
    return OrganizationReportRead(
        organization_id=organization_id,
        month=month,
        period_start=bounds.start,
        period_end=bounds.end,
        total_commission=float(sum(row.total_commission for row in rows)),
        trainers=[_row_read(row) for row in rows],
    )


@router.get("/export")
def export_report(
    organization_id: int,
    month: str,
    location_id: Optional[int] = None,
    service: CommissionService = Depends(get_commission_service),
) -> Response:
    location_ids = [location_id] if location_id is not None else None
    try:
        organization, bounds = _organization_period(service, organization_id, month)
        rows = service.calculate_organization_commissions(organization_id, bounds, location_ids=location_ids)
    except CommissionError as exc:
        _raise_http(exc)
    content = export_report_workbook(rows, format_period_label(bounds, organization.timezone))
    filename = f"commissions_{organization_id}_{month}.xlsx"
    return Response(
        content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
