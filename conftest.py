import os
import shutil
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Create a temporary SQLite database file for the whole test session
_TEMP_DIR = tempfile.mkdtemp(prefix="commission_tests_")
_DB_FILE = os.path.join(_TEMP_DIR, "test_commission.db")
os.environ["COMMISSION_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Initialize a fresh temporary SQLite database for tests and clean it up after."""
    # Import after setting env var so the app uses the temp DB
    from commissiondesk.database import engine, init_db

    # Enable SQLite foreign keys
    if "sqlite" in str(engine.url):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    init_db()

    yield

    # Dispose engine and remove temp directory
    try:
        engine.dispose()
    except Exception:
        pass
    shutil.rmtree(_TEMP_DIR, ignore_errors=True)


# Each test starts with empty tables in the shared file database.
@pytest.fixture(autouse=True)
def _clean_domain_tables():
    from commissiondesk.database import Base, SessionLocal

    session = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()


@pytest.fixture
def db_session():
    """Isolated in-memory database session."""
    from commissiondesk.database import Base

    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


STANDARD_TIERS = (
    {"tier_level": 1, "name": "Starter", "session_threshold": 0, "session_commission_percent": "40"},
    {"tier_level": 2, "name": "Pro", "session_threshold": 11, "session_commission_percent": "50"},
    {"tier_level": 3, "name": "Elite", "session_threshold": 21, "session_commission_percent": "60"},
)

DECIMAL_TIER_FIELDS = frozenset(
    {
        "sales_threshold",
        "session_commission_percent",
        "session_flat_fee",
        "sales_commission_percent",
        "sales_flat_fee",
        "tier_bonus",
    }
)


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def organization(self, name="Studio One", timezone="Asia/Singapore"):
        from commissiondesk.models import Organization

        return self._save(Organization(name=name, timezone=timezone))

    def location(self, organization, name="Downtown"):
        from commissiondesk.models import Location

        return self._save(Location(organization_id=organization.id, name=name))

    def profile(
        self,
        organization,
        name="Standard",
        calculation_method="PROGRESSIVE",
        trigger_type="SESSION_COUNT",
        tiers=STANDARD_TIERS,
        is_active=True,
    ):
        from commissiondesk.models import CommissionProfile, CommissionTier

        profile = CommissionProfile(
            organization_id=organization.id,
            name=name,
            calculation_method=calculation_method,
            trigger_type=trigger_type,
            is_active=is_active,
        )
        for spec in tiers:
            values = {
                key: (Decimal(value) if key in DECIMAL_TIER_FIELDS and value is not None else value)
                for key, value in spec.items()
            }
            profile.tiers.append(CommissionTier(**values))
        return self._save(profile)

    def trainer(self, organization, profile=None, location=None, name="Alex", active=True):
        from commissiondesk.models import Trainer

        return self._save(
            Trainer(
                organization_id=organization.id,
                location_id=location.id if location else None,
                name=name,
                email=f"{name.lower()}@example.com",
                active=active,
                commission_profile_id=profile.id if profile else None,
            )
        )

    def sessions(
        self,
        trainer,
        count,
        value="100",
        start=datetime(2025, 3, 1, 2, 0),
        validated=True,
        cancelled=False,
        location=None,
    ):
        """``count`` sessions on consecutive days from ``start`` (naive UTC)."""
        from commissiondesk.models import TrainingSession

        for index in range(count):
            self.session.add(
                TrainingSession(
                    trainer_id=trainer.id,
                    organization_id=trainer.organization_id,
                    location_id=location.id if location else trainer.location_id,
                    session_date=start + timedelta(days=index),
                    session_value=Decimal(value),
                    validated=validated,
                    cancelled=cancelled,
                )
            )
        self.session.commit()

    def payment(self, organization, amount, when, first=None, second=None):
        from commissiondesk.models import Payment

        return self._save(
            Payment(
                organization_id=organization.id,
                amount=Decimal(amount),
                payment_date=when,
                sales_attributed_to_id=first.id if first else None,
                sales_attributed_to2_id=second.id if second else None,
            )
        )


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


@pytest.fixture
def app_factory():
    """Factory bound to the application's configured database."""
    from commissiondesk.database import SessionLocal

    session = SessionLocal()
    try:
        yield Factory(session)
    finally:
        session.close()
