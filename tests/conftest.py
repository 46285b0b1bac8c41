"""
Shared fixtures: a fresh in-memory database and fresh stores per test.
"""
import os

# Must be set before auth/database are imported
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bill_store import BillStore
from cart_store import CartStore
from catalog import Catalog
from checkout import CheckoutService
from database import init_db, make_engine
from user_store import UserStore


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    init_db(bind=engine, session_factory=factory)
    return factory


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0))


@pytest.fixture
def catalog(session_factory):
    return Catalog(session_factory)


@pytest.fixture
def users(session_factory):
    return UserStore(session_factory)


@pytest.fixture
def carts(session_factory):
    return CartStore(session_factory)


@pytest.fixture
def bills(session_factory, clock):
    return BillStore(session_factory, clock=clock)


@pytest.fixture
def checkout_service(users, carts, bills):
    return CheckoutService(users, carts, bills)


@pytest.fixture
def login(users):
    """Log a user in on the device (auto-provisioning) and return the session."""
    def _login(username: str):
        assert users.simple_login(username)
        return users.current_session()
    return _login
