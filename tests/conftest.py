"""
Shared fixtures for the pipeline tests.

Every test gets a private SQLite in-memory database, in-memory
adapters, a seeded RNG and a controllable clock.
"""

import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from adapters.event_bus import InMemoryEventBus
from adapters.object_store import InMemoryObjectStore
from contracts.dtos import Trade
from core.clock import MockClock
from database.engine import create_all_tables, create_in_memory_engine, get_session_factory


T0 = datetime(2026, 3, 2, 10, 30, 15, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_in_memory_engine()
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def event_bus():
    return InMemoryEventBus()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def clock():
    return MockClock(T0.replace(microsecond=654321))


def build_trade(**overrides) -> Trade:
    values = dict(
        trade_id=2001,
        contract_id=101,
        customer_id=201,
        book_id=301,
        trader_id=Decimal("1.5"),
        department_id=401,
        trade_date=T0,
        time_updated=T0,
        volume=Decimal("100"),
        price=Decimal("70.25"),
        currency="USD",
        side="Buy",
        counterparty_id=501,
        delivery_start=datetime(2026, 5, 2, 10, 30, 15, tzinfo=timezone.utc),
        delivery_end=datetime(2026, 7, 2, 10, 30, 15, tzinfo=timezone.utc),
        product_type="Future",
        source="MockedETRM",
    )
    values.update(overrides)
    return Trade(**values)


@pytest.fixture
def make_trade():
    return build_trade
