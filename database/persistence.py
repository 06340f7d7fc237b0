"""
Database Persistence Functions.

============================================================
NORMALIZED STORE OPERATIONS
============================================================

Every write function:
- Issues one statement per record (caller owns the transaction)
- Logs structured output: "Persist table_name: inserted=N"
- Raises DatabasePersistenceError on failure

Upserts use the dialect's INSERT ... ON CONFLICT DO UPDATE,
so PostgreSQL and SQLite behave the same.

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from contracts.dtos import EndOfDaySettlementPrice, Position, Trade

from .engine import DatabasePersistenceError
from .models import (
    POSITION_KEY_COLUMNS,
    EodPriceRecord,
    PositionRecord,
    TradeRecord,
)

logger = logging.getLogger(__name__)


TRADE_CONFLICT_COLUMNS = ("trade_id", "trade_date")
TRADE_UPDATE_COLUMNS = ("time_updated", "volume", "price")
POSITION_UPDATE_COLUMNS = ("volume", "time_updated", "source")


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def _log_persistence(table_name: str, count: int, details: str = "") -> None:
    """Log persistence result in structured format."""
    if details:
        logger.info(f"Persist {table_name}: inserted={count} ({details})")
    else:
        logger.info(f"Persist {table_name}: inserted={count}")


def _log_zero_records(table_name: str, reason: str) -> None:
    logger.warning(f"Persist {table_name}: inserted=0 | reason={reason}")


def _insert_for(session: Session, model):
    """Dialect-specific INSERT supporting on_conflict_do_update."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise DatabasePersistenceError(f"Upsert not supported for dialect: {dialect}")


def _upsert(
    session: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> None:
    stmt = _insert_for(session, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    session.execute(stmt)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _trade_values(trade: Trade) -> Dict[str, Any]:
    return {
        "trade_id": trade.trade_id,
        "contract_id": trade.contract_id,
        "customer_id": trade.customer_id,
        "book_id": trade.book_id,
        "trader_id": trade.trader_id,
        "department_id": trade.department_id,
        "trade_date": trade.trade_date,
        "time_updated": trade.time_updated,
        "volume": trade.volume,
        "price": trade.price,
        "currency": trade.currency,
        "side": trade.side,
        "counterparty_id": trade.counterparty_id,
        "delivery_start": trade.delivery_start,
        "delivery_end": trade.delivery_end,
        "product_type": trade.product_type,
        "source": trade.source,
    }


def _position_values(position: Position) -> Dict[str, Any]:
    return {
        "contract_id": position.contract_id,
        "customer_id": position.customer_id,
        "book_id": position.book_id,
        "trader_id": position.trader_id,
        "department_id": position.department_id,
        "product_type": position.product_type,
        "currency": position.currency,
        "side": position.side,
        "volume": position.volume,
        "time_updated": position.time_updated,
        "source": position.source,
    }


def record_to_trade(record: TradeRecord) -> Trade:
    return Trade(
        trade_id=record.trade_id,
        contract_id=record.contract_id,
        customer_id=record.customer_id,
        book_id=record.book_id,
        trader_id=record.trader_id,
        department_id=record.department_id,
        trade_date=_as_utc(record.trade_date),
        time_updated=_as_utc(record.time_updated),
        volume=record.volume,
        price=record.price,
        currency=record.currency,
        side=record.side,
        counterparty_id=record.counterparty_id,
        delivery_start=_as_utc(record.delivery_start),
        delivery_end=_as_utc(record.delivery_end),
        product_type=record.product_type,
        source=record.source,
    )


def record_to_price(record: EodPriceRecord) -> EndOfDaySettlementPrice:
    return EndOfDaySettlementPrice(
        contract_id=record.contract_id,
        customer_id=record.customer_id,
        trading_period=record.trading_period,
        publication_time=_as_utc(record.publication_time),
        price=record.price,
        currency=record.currency,
        price_source=record.price_source,
        market_zone=record.market_zone,
    )


def record_to_position(record: PositionRecord) -> Position:
    return Position(
        contract_id=record.contract_id,
        customer_id=record.customer_id,
        book_id=record.book_id,
        trader_id=record.trader_id,
        department_id=record.department_id,
        product_type=record.product_type,
        currency=record.currency,
        side=record.side,
        volume=record.volume,
        time_updated=_as_utc(record.time_updated),
        source=record.source,
        position_id=record.position_id,
    )


# =============================================================
# 1. TRADES
# =============================================================

def upsert_trades(session: Session, trades: Iterable[Trade], import_id: str = "") -> int:
    """
    Insert or update trades by (trade_id, trade_date).
    
    An existing row only has time_updated, volume and price
    overwritten; every other column keeps its first value.
    
    Returns:
        Number of statements executed
        
    Raises:
        DatabasePersistenceError on failure
    """
    trades = list(trades)
    if not trades:
        _log_zero_records("trades", "empty input")
        return 0
    
    try:
        for trade in trades:
            _upsert(
                session,
                TradeRecord,
                _trade_values(trade),
                TRADE_CONFLICT_COLUMNS,
                TRADE_UPDATE_COLUMNS,
            )
        session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist trades: {e}")
        raise DatabasePersistenceError(f"trades persistence failed: {e}", cause=e) from e
    
    _log_persistence("trades", len(trades), f"import_id={import_id}" if import_id else "")
    return len(trades)


def fetch_recent_trades(session: Session, limit: int) -> List[Trade]:
    """Most recent trades by trade_date, newest first."""
    try:
        records = session.execute(
            select(TradeRecord)
            .order_by(TradeRecord.trade_date.desc(), TradeRecord.trade_id.desc())
            .limit(limit)
        ).scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to read trades: {e}")
        raise DatabasePersistenceError(f"trades read failed: {e}", cause=e) from e
    return [record_to_trade(record) for record in records]


# =============================================================
# 2. EOD PRICES
# =============================================================

def insert_eod_prices(
    session: Session,
    prices: Iterable[EndOfDaySettlementPrice],
    import_id: str = "",
) -> int:
    """
    Append settlement prices; there is no conflict handling.
    
    Raises:
        DatabasePersistenceError on failure
    """
    prices = list(prices)
    if not prices:
        _log_zero_records("eod_prices", "empty input")
        return 0
    
    try:
        for price in prices:
            session.add(EodPriceRecord(
                contract_id=price.contract_id,
                customer_id=price.customer_id,
                trading_period=price.trading_period,
                publication_time=price.publication_time,
                price=price.price,
                currency=price.currency,
                price_source=price.price_source,
                market_zone=price.market_zone,
            ))
        session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist eod_prices: {e}")
        raise DatabasePersistenceError(f"eod_prices persistence failed: {e}", cause=e) from e
    
    _log_persistence("eod_prices", len(prices), f"import_id={import_id}" if import_id else "")
    return len(prices)


def fetch_eod_prices(session: Session) -> List[EndOfDaySettlementPrice]:
    records = session.execute(
        select(EodPriceRecord).order_by(EodPriceRecord.id)
    ).scalars().all()
    return [record_to_price(record) for record in records]


# =============================================================
# 3. POSITIONS
# =============================================================

def upsert_positions(session: Session, positions: Iterable[Position]) -> int:
    """
    Insert or update positions by their 8-attribute key.
    
    Raises:
        DatabasePersistenceError on failure
    """
    positions = list(positions)
    if not positions:
        _log_zero_records("positions", "no trades to aggregate")
        return 0
    
    try:
        for position in positions:
            _upsert(
                session,
                PositionRecord,
                _position_values(position),
                POSITION_KEY_COLUMNS,
                POSITION_UPDATE_COLUMNS,
            )
        session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist positions: {e}")
        raise DatabasePersistenceError(f"positions persistence failed: {e}", cause=e) from e
    
    _log_persistence("positions", len(positions))
    return len(positions)


def fetch_positions(session: Session) -> List[Position]:
    records = session.execute(
        select(PositionRecord).order_by(PositionRecord.position_id)
    ).scalars().all()
    return [record_to_position(record) for record in records]
