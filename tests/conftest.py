from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session, sessionmaker

from locker_rental.config.settings import Settings
from locker_rental.core.pricing import PricingPolicy
from locker_rental.db.database import get_engine, get_sessionmaker
from locker_rental.db.models import Base
from locker_rental.db.seed import seed_registry
from locker_rental.services.payment import PaymentService
from locker_rental.services.rental import RentalEngine

T0 = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_settings(tmp_path: Path, name: str = "lockers", **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+pysqlite:///{tmp_path / name}.db",
        "session_store_path": tmp_path / f"{name}-sessions.json",
        "lock_controller_base": None,
        "psp_base": None,
        "seed_registry": True,
    }
    values.update(overrides)
    return Settings(**values)


def setup_registry(settings: Settings) -> sessionmaker:
    db_engine = get_engine(settings.database_url)
    Base.metadata.create_all(db_engine)
    Session = get_sessionmaker(settings, db_engine)
    with Session() as s:
        seed_registry(s)
        s.commit()
    return Session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def session_factory(settings) -> sessionmaker:
    return setup_registry(settings)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def lock_controller() -> Mock:
    controller = Mock()
    controller.actuate.return_value = None
    return controller


@pytest.fixture
def payment_client() -> Mock:
    client = Mock()
    client.charge.return_value = (True, None)
    return client


@pytest.fixture
def engine(session_factory, settings, lock_controller, payment_client, clock) -> RentalEngine:
    return RentalEngine(
        session_factory,
        PricingPolicy(settings),
        lock_controller,
        PaymentService(payment_client),
        clock=clock,
    )


@pytest.fixture
def make_engine(tmp_path, lock_controller, clock):
    """Build an engine over its own, freshly seeded registry."""

    def _make(name: str) -> RentalEngine:
        settings = make_settings(tmp_path, name)
        return RentalEngine(
            setup_registry(settings),
            PricingPolicy(settings),
            lock_controller,
            clock=clock,
        )

    return _make


def pytest_configure(config):
    config.addinivalue_line("markers", "concurrency: mark test as exercising parallel callers")
