from datetime import datetime
from decimal import Decimal

import pytest

from commissiondesk.core.periods import resolve_month_bounds_utc
from commissiondesk.errors import ConfigurationError
from commissiondesk.services import SessionAggregator

MARCH = resolve_month_bounds_utc(2025, 3, "Asia/Singapore")


def test_only_validated_uncancelled_sessions_inside_the_period_count(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org)
    other = factory.trainer(org, name="Blake")

    factory.sessions(trainer, 3, value="80")
    factory.sessions(trainer, 1, validated=False)
    factory.sessions(trainer, 1, cancelled=True)
    factory.sessions(other, 4)
    # 2025-03-01 00:00 Singapore is inside, the instant before is not
    factory.sessions(trainer, 1, value="10", start=datetime(2025, 2, 28, 16, 0))
    factory.sessions(trainer, 1, start=datetime(2025, 2, 28, 15, 59))
    # exactly at the end belongs to April
    factory.sessions(trainer, 1, start=datetime(2025, 3, 31, 16, 0))

    facts = SessionAggregator(db_session).aggregate_period_facts(trainer.id, MARCH)
    assert facts.session_count == 4
    assert facts.total_session_value == Decimal("250")
    assert facts.session_values[0] == Decimal("10")
    assert facts.sales_volume == Decimal("0")


def test_location_filter_restricts_sessions(db_session, factory):
    org = factory.organization()
    downtown = factory.location(org, "Downtown")
    harbour = factory.location(org, "Harbour")
    trainer = factory.trainer(org, location=downtown)
    factory.sessions(trainer, 2, location=downtown)
    factory.sessions(trainer, 5, location=harbour)

    aggregator = SessionAggregator(db_session)
    assert aggregator.aggregate_period_facts(trainer.id, MARCH).session_count == 7
    assert aggregator.aggregate_period_facts(trainer.id, MARCH, [harbour.id]).session_count == 5


def test_shared_payments_count_half_toward_each_trainer(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org)
    partner = factory.trainer(org, name="Blake")
    in_march = datetime(2025, 3, 10, 4, 0)
    factory.payment(org, "1000", in_march, trainer, partner)
    factory.payment(org, "400", in_march, trainer)
    factory.payment(org, "300", in_march, trainer, trainer)
    factory.payment(org, "999", datetime(2025, 4, 10), trainer)

    aggregator = SessionAggregator(db_session)
    facts = aggregator.aggregate_period_facts(trainer.id, MARCH, include_sales=True)
    assert facts.sales_volume == Decimal("1200")
    assert facts.sales_count == 3

    partner_facts = aggregator.aggregate_period_facts(partner.id, MARCH, include_sales=True)
    assert partner_facts.sales_volume == Decimal("500")


def test_sales_are_skipped_unless_requested(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org)
    factory.payment(org, "400", datetime(2025, 3, 10), trainer)

    facts = SessionAggregator(db_session).aggregate_period_facts(trainer.id, MARCH)
    assert facts.sales_volume == Decimal("0")
    assert facts.sales_count == 0


def test_negative_session_value_is_rejected(db_session, factory):
    org = factory.organization()
    trainer = factory.trainer(org)
    factory.sessions(trainer, 1, value="-5")

    with pytest.raises(ConfigurationError, match="negative value"):
        SessionAggregator(db_session).aggregate_period_facts(trainer.id, MARCH)
