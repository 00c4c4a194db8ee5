"""Shared fixtures: in-memory SQLite store, fake event bus, frozen clock."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("OTEL_SDK_DISABLED", "true")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from orderpay.common.db import Base, make_session_factory
from orderpay.common.errors import TransientInfrastructureError
from orderpay.common.retry import RetryPolicy
from orderpay.services.payment.service import PaymentLifecycleEngine
from orderpay.services.payment.store import PaymentStore


class FakeBus:
    """Records published events; can be told to fail the next N publishes."""

    def __init__(self) -> None:
        self.published = []
        self.fail_next = 0
        self.calls = 0

    async def publish(self, topic, event, key=None) -> None:
        self.calls += 1
        if self.fail_next:
            self.fail_next -= 1
            raise TransientInfrastructureError("broker unavailable")
        self.published.append((topic, event, key))

    @property
    def events(self):
        return [event for _, event, _ in self.published]


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return PaymentStore(session_factory)


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, backoff_seconds=0)


@pytest.fixture
def engine(store, bus, clock, retry_policy):
    return PaymentLifecycleEngine(store, bus, retry_policy=retry_policy, clock=clock, service_name="test")
