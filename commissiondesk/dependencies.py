"""Shared FastAPI dependencies."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from commissiondesk.database import get_session
from commissiondesk.services import CommissionService


def get_commission_service(db: Session = Depends(get_session)) -> CommissionService:
    """Commission service bound to the request's database session."""

    return CommissionService(db)
