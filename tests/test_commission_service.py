import json
from datetime import datetime
from decimal import Decimal

import pytest

from commissiondesk import crud
from commissiondesk.core.periods import MonthPeriod
from commissiondesk.errors import (
    ConfigurationError,
    NoProfileAssignedError,
    OrganizationNotFoundError,
    TrainerNotFoundError,
)
from commissiondesk.services import CommissionService, ProfileResolver

MARCH = MonthPeriod(2025, 3)


def test_preview_computes_without_writing(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org, factory.profile(org))
    factory.sessions(trainer, 20)

    result = CommissionService(db_session).calculate_commission(trainer.id, MARCH)

    assert result.total_commission == Decimal("1000.00")
    assert result.tier_reached == 2
    assert crud.count_calculations(db_session, trainer.id) == 0
    assert crud.list_audit_entries(db_session) == []


def test_saving_twice_keeps_one_row_with_latest_values(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org, factory.profile(org))
    factory.sessions(trainer, 20)
    service = CommissionService(db_session)

    first = service.calculate_commission(trainer.id, MARCH, save_calculation=True, actor="manager")
    factory.sessions(trainer, 1, start=datetime(2025, 3, 25, 2, 0))
    second = service.calculate_commission(trainer.id, MARCH, save_calculation=True, actor="manager")

    assert first.total_commission == Decimal("1000.00")
    assert second.total_commission == Decimal("1260.00")
    assert crud.count_calculations(db_session, trainer.id) == 1

    (stored,) = service.get_calculation_history(trainer.id)
    assert stored.total_commission == Decimal("1260.00")
    assert stored.tier_reached == 3
    assert stored.total_sessions == 21
    assert stored.period_start == datetime(2025, 2, 28, 16, 0)
    assert stored.period_end == datetime(2025, 3, 31, 16, 0)
    assert json.loads(stored.calculation_snapshot)["tier_reached"] == 3

    entries = crud.list_audit_entries(db_session, "commission.calculated")
    assert len(entries) == 2
    assert entries[0].actor == "manager"


def test_explicit_range_is_accepted(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org, factory.profile(org))
    factory.sessions(trainer, 5)

    period = (datetime(2025, 3, 1), datetime(2025, 3, 3))
    result = CommissionService(db_session).calculate_commission(trainer.id, period)
    assert result.total_sessions == 2
    assert result.total_commission == Decimal("80.00")


def test_trainer_without_profile_raises(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org)
    factory.sessions(trainer, 3)

    with pytest.raises(NoProfileAssignedError, match="Contact your manager"):
        CommissionService(db_session).calculate_commission(trainer.id, MARCH, save_calculation=True)
    assert crud.count_calculations(db_session, trainer.id) == 0


def test_inactive_profile_is_treated_as_unassigned(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org, factory.profile(org, is_active=False))

    with pytest.raises(NoProfileAssignedError, match="inactive"):
        CommissionService(db_session).calculate_commission(trainer.id, MARCH)


def test_profile_without_tiers_is_a_configuration_error(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org, factory.profile(org, tiers=()))

    with pytest.raises(ConfigurationError):
        CommissionService(db_session).calculate_commission(trainer.id, MARCH)


def test_unknown_trainer_raises(db_session):
    with pytest.raises(TrainerNotFoundError):
        CommissionService(db_session).calculate_commission(9999, MARCH)


def test_organization_report_orders_by_commission_and_reports_errors(db_session, factory):
    org = factory.organization()
    profile = factory.profile(org)
    top = factory.trainer(org, profile, name="Alex")
    low = factory.trainer(org, profile, name="Blake")
    unassigned = factory.trainer(org, name="Casey")
    factory.trainer(org, profile, name="Dana", active=False)
    factory.sessions(top, 20)
    factory.sessions(low, 5)

    rows = CommissionService(db_session).calculate_organization_commissions(
        org.id, MARCH, save_calculation=True
    )

    assert [row.trainer_name for row in rows] == ["Alex", "Blake", "Casey"]
    assert rows[0].total_commission == Decimal("1000.00")
    assert rows[1].total_commission == Decimal("200.00")
    assert rows[2].result is None
    assert "Contact your manager" in rows[2].error
    assert crud.count_calculations(db_session, top.id) == 1
    assert crud.count_calculations(db_session, unassigned.id) == 0


def test_organization_report_for_unknown_organization(db_session):
    with pytest.raises(OrganizationNotFoundError):
        CommissionService(db_session).calculate_organization_commissions(42, MARCH)


def test_resolve_profile_sorts_tiers_ascending(db_session, factory):
    org = factory.organization()
    tiers = (
        {"tier_level": 2, "name": "Pro", "session_threshold": 11, "session_commission_percent": "50"},
        {"tier_level": 1, "name": "Starter", "session_threshold": 0, "session_commission_percent": "40"},
    )
    trainer = factory.trainer(org, factory.profile(org, calculation_method="GRADUATED", tiers=tiers))

    resolved = ProfileResolver(db_session).resolve_profile(trainer.id)
    assert [tier.tier_level for tier in resolved.tiers] == [1, 2]
    assert resolved.calculation_method.value == "GRADUATED"
    assert [tier.name for tier in resolved.tiers] == ["Starter", "Pro"]
    assert resolved.tiers[1].session_commission_percent == Decimal("50")

    with pytest.raises(TrainerNotFoundError):
        ProfileResolver(db_session).resolve_profile(9999)


def test_sales_volume_profile_counts_attributed_payments(db_session, factory):
    org = factory.organization()
    tiers = (
        {"tier_level": 1, "name": "Base", "sales_threshold": "0", "sales_commission_percent": "5"},
        {"tier_level": 2, "name": "Closer", "sales_threshold": "1000", "sales_commission_percent": "10"},
    )
    trainer = factory.trainer(org, factory.profile(org, trigger_type="SALES_VOLUME", tiers=tiers))
    factory.payment(org, "1500", datetime(2025, 3, 10, 4, 0), first=trainer)

    result = CommissionService(db_session).calculate_commission(trainer.id, MARCH)

    assert result.tier_reached == 2
    assert result.sales_volume == Decimal("1500.00")
    assert result.total_sales_count == 1
    assert result.sales_commission == Decimal("150.00")


def test_both_and_profile_needs_sessions_and_sales(db_session, factory):
    org = factory.organization()
    tiers = (
        {"tier_level": 1, "name": "Base", "session_threshold": 0, "sales_threshold": "0", "session_commission_percent": "40"},
        {"tier_level": 2, "name": "Pro", "session_threshold": 10, "sales_threshold": "1000", "session_commission_percent": "50"},
    )
    trainer = factory.trainer(org, factory.profile(org, trigger_type="BOTH_AND", tiers=tiers))
    factory.sessions(trainer, 15)
    factory.payment(org, "500", datetime(2025, 3, 10, 4, 0), first=trainer)
    service = CommissionService(db_session)

    short = service.calculate_commission(trainer.id, MARCH)
    assert short.tier_reached == 1
    assert short.total_commission == Decimal("600.00")

    factory.payment(org, "600", datetime(2025, 3, 12, 4, 0), first=trainer)
    met = service.calculate_commission(trainer.id, MARCH)
    assert met.tier_reached == 2
    assert met.total_commission == Decimal("750.00")
