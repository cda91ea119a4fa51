"""Shared fixtures: an in-memory SQLite store seeded with a small marketplace."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from rentmatch.common.config import EngineSettings
from rentmatch.common.db import Base, make_session_factory
from rentmatch.common.identity import OPERATOR, PAYMENT_PROVIDER, Caller
from rentmatch.repository.models import ItemRow, ProfileRow
from rentmatch.repository.sql import SqlRepository
from rentmatch.services.lifecycle.service import LifecycleService
from rentmatch.services.matching.service import MatchingService
from rentmatch.services.payouts.service import PayoutService

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def add_profile(session_factory, profile_id: str, role: str, **fields) -> None:
    fields.setdefault("categories", [])
    fields.setdefault("last_active_at", NOW)
    with session_factory() as db:
        db.add(ProfileRow(id=profile_id, role=role, **fields))
        db.commit()


def add_item(session_factory, item_id: str, owner_id: str, **fields) -> None:
    fields.setdefault("category_id", "electronics")
    fields.setdefault("price_per_day_cents", 15_000)
    fields.setdefault("status", "available")
    with session_factory() as db:
        db.add(ItemRow(id=item_id, owner_id=owner_id, **fields))
        db.commit()


@pytest.fixture
def settings():
    return EngineSettings(
        service_name="rentmatch-test",
        api_key="test-key",
        otel_enabled=False,
        log_level="WARNING",
        postgres_dsn="sqlite+pysqlite:///:memory:",
    )


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def repository(session_factory):
    return SqlRepository(session_factory)


@pytest.fixture
def marketplace(session_factory):
    """Client in Cape Town wanting electronics; two Cape Town businesses."""

    add_profile(
        session_factory,
        "client-1",
        "client",
        categories=["electronics"],
        location="Cape Town",
        price_min_cents=10_000,
        price_max_cents=30_000,
    )
    add_profile(
        session_factory,
        "biz-1",
        "business",
        categories=["electronics"],
        location="Cape Town",
        price_min_cents=15_000,
        price_max_cents=15_000,
        last_active_at=NOW - timedelta(days=1),
    )
    add_profile(
        session_factory,
        "biz-2",
        "business",
        categories=["clothing"],
        location="Cape Town",
        price_min_cents=20_000,
        price_max_cents=20_000,
    )
    add_item(session_factory, "item-1", "biz-1", title="Projector")
    add_item(session_factory, "item-2", "biz-1", title="Drone", status="unavailable")
    add_item(session_factory, "item-3", "biz-2", category_id="clothing", price_per_day_cents=20_000)
    return session_factory


@pytest.fixture
def client_caller():
    return Caller(user_id="client-1")


@pytest.fixture
def owner_caller():
    return Caller(user_id="biz-1")


@pytest.fixture
def stranger_caller():
    return Caller(user_id="someone-else")


@pytest.fixture
def operator_caller():
    return Caller(user_id="ops-1", capabilities=frozenset({OPERATOR}))


@pytest.fixture
def provider_caller():
    return Caller(user_id="payments-gateway", capabilities=frozenset({PAYMENT_PROVIDER}))


@pytest.fixture
def lifecycle(repository, settings):
    return LifecycleService(repository, settings)


@pytest.fixture
def matching(repository, settings):
    return MatchingService(repository, settings)


@pytest.fixture
def payouts(repository, settings):
    return PayoutService(repository, settings, clock=lambda: NOW)
