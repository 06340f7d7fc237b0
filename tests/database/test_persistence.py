"""
Persistence Tests.

Upsert and append semantics of the trades, eod_prices and
positions tables on an in-memory SQLite database.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from contracts.dtos import EndOfDaySettlementPrice, Position
from database.engine import (
    DatabasePersistenceError,
    create_in_memory_engine,
    get_db_session,
    get_session_factory,
    get_table_row_counts,
    transaction_scope,
)
from database.persistence import (
    fetch_eod_prices,
    fetch_positions,
    fetch_recent_trades,
    insert_eod_prices,
    upsert_positions,
    upsert_trades,
)


T0 = datetime(2026, 3, 2, 10, 30, 15, tzinfo=timezone.utc)


def _price(**overrides) -> EndOfDaySettlementPrice:
    values = dict(
        contract_id=101,
        customer_id=201,
        trading_period=date(2026, 3, 2),
        publication_time=datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc),
        price=Decimal("71.40"),
        currency="USD",
        price_source="MockedExchange",
        market_zone="EU",
    )
    values.update(overrides)
    return EndOfDaySettlementPrice(**values)


def _position(**overrides) -> Position:
    values = dict(
        contract_id=101,
        customer_id=201,
        book_id=301,
        trader_id=Decimal("1.5"),
        department_id=401,
        product_type="Future",
        currency="USD",
        side="Buy",
        volume=Decimal("3"),
        time_updated=T0,
        source="Aggregated",
    )
    values.update(overrides)
    return Position(**values)


# ============================================================
# TRADES
# ============================================================

class TestTradeUpsert:
    """Trades are keyed by (trade_id, trade_date)."""
    
    def test_round_trip(self, session_factory, make_trade):
        trade = make_trade()
        
        with transaction_scope(session_factory) as session:
            assert upsert_trades(session, [trade]) == 1
        
        with get_db_session(session_factory) as session:
            assert fetch_recent_trades(session, 10) == [trade]
    
    def test_second_upsert_updates_mutable_columns_only(self, session_factory, make_trade):
        later = T0 + timedelta(minutes=5)
        
        with transaction_scope(session_factory) as session:
            upsert_trades(session, [make_trade()])
        with transaction_scope(session_factory) as session:
            upsert_trades(session, [make_trade(
                volume=Decimal("250"),
                price=Decimal("72.10"),
                time_updated=later,
                contract_id=999,
            )])
        
        with get_db_session(session_factory) as session:
            stored = fetch_recent_trades(session, 10)
        
        assert len(stored) == 1
        assert stored[0].volume == Decimal("250")
        assert stored[0].price == Decimal("72.10")
        assert stored[0].time_updated == later
        assert stored[0].contract_id == 101
    
    def test_same_id_on_another_date_is_a_new_row(self, session_factory, make_trade):
        with transaction_scope(session_factory) as session:
            upsert_trades(session, [
                make_trade(),
                make_trade(trade_date=T0 + timedelta(days=1)),
            ])
        
        with get_db_session(session_factory) as session:
            stored = fetch_recent_trades(session, 10)
        
        assert {t.natural_key for t in stored} == {
            (2001, T0),
            (2001, T0 + timedelta(days=1)),
        }
    
    def test_recent_trades_newest_first_and_limited(self, session_factory, make_trade):
        trades = [
            make_trade(trade_id=2001 + i, trade_date=T0 + timedelta(hours=i))
            for i in range(5)
        ]
        with transaction_scope(session_factory) as session:
            upsert_trades(session, trades)
        
        with get_db_session(session_factory) as session:
            recent = fetch_recent_trades(session, 3)
        
        assert [t.trade_id for t in recent] == [2005, 2004, 2003]
    
    def test_empty_input(self, session_factory):
        with transaction_scope(session_factory) as session:
            assert upsert_trades(session, []) == 0
    
    def test_failed_batch_rolls_back(self, session_factory, make_trade):
        with pytest.raises(DatabasePersistenceError):
            with transaction_scope(session_factory) as session:
                upsert_trades(session, [
                    make_trade(),
                    make_trade(trade_id=2002, currency=None),
                ])
        
        with get_db_session(session_factory) as session:
            assert fetch_recent_trades(session, 10) == []


# ============================================================
# EOD PRICES
# ============================================================

class TestEodPrices:
    """Settlement prices are append-only."""
    
    def test_duplicates_are_kept(self, session_factory):
        with transaction_scope(session_factory) as session:
            insert_eod_prices(session, [_price()])
        with transaction_scope(session_factory) as session:
            insert_eod_prices(session, [_price()])
        
        with get_db_session(session_factory) as session:
            stored = fetch_eod_prices(session)
        
        assert stored == [_price(), _price()]
    
    def test_empty_input(self, session_factory):
        with transaction_scope(session_factory) as session:
            assert insert_eod_prices(session, []) == 0


# ============================================================
# POSITIONS
# ============================================================

class TestPositionUpsert:
    """Positions are keyed by their eight attributes."""
    
    def test_update_keeps_position_id(self, session_factory):
        later = T0 + timedelta(hours=1)
        
        with transaction_scope(session_factory) as session:
            upsert_positions(session, [_position()])
        with get_db_session(session_factory) as session:
            first_id = fetch_positions(session)[0].position_id
        
        with transaction_scope(session_factory) as session:
            upsert_positions(session, [_position(volume=Decimal("7"), time_updated=later)])
        with get_db_session(session_factory) as session:
            stored = fetch_positions(session)
        
        assert len(stored) == 1
        assert stored[0].position_id == first_id
        assert stored[0].volume == Decimal("7")
        assert stored[0].time_updated == later
    
    def test_distinct_keys(self, session_factory):
        with transaction_scope(session_factory) as session:
            upsert_positions(session, [_position(), _position(side="Sell")])
        
        with get_db_session(session_factory) as session:
            assert {p.side for p in fetch_positions(session)} == {"Buy", "Sell"}


# ============================================================
# ROW COUNTS
# ============================================================

class TestRowCounts:
    
    def test_counts_after_writes(self, engine, session_factory, make_trade):
        with transaction_scope(session_factory) as session:
            upsert_trades(session, [make_trade()])
            insert_eod_prices(session, [_price(), _price()])
        
        counts = get_table_row_counts(engine)
        
        assert counts["trades"] == 1
        assert counts["eod_prices"] == 2
        assert counts["positions"] == 0
    
    def test_missing_tables_report_minus_one(self):
        engine = create_in_memory_engine()
        try:
            counts = get_table_row_counts(engine)
        finally:
            engine.dispose()
        
        assert counts["trades"] == -1
