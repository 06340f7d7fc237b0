"""
Database ORM Models - Normalized ETRM Tables.

============================================================
SCHEMA
============================================================

trades      unique (trade_id, trade_date), upserted
eod_prices  append-only
positions   unique on the 8-attribute position key, upserted

All timestamps are stored timezone-aware (UTC).

============================================================
"""

from sqlalchemy import (
    BigInteger, Column, Date, DateTime, Index, Integer, Numeric, String,
    UniqueConstraint,
)

from .engine import Base


# SQLite only autoincrements INTEGER PRIMARY KEY columns
SurrogateId = BigInteger().with_variant(Integer, "sqlite")

PRICE = Numeric(18, 2)
VOLUME = Numeric(18, 4)
TRADER_ID = Numeric(10, 2)


# =============================================================
# 1. TRADES TABLE
# =============================================================

class TradeRecord(Base):
    """
    Normalized trades.
    
    Source: data_processing.normalizer_module
    Conflict target: (trade_id, trade_date)
    """
    __tablename__ = "trades"
    
    id = Column(SurrogateId, primary_key=True, autoincrement=True)
    
    trade_id = Column(BigInteger, nullable=False)
    contract_id = Column(Integer, nullable=False)
    customer_id = Column(Integer, nullable=False)
    book_id = Column(Integer, nullable=False)
    trader_id = Column(TRADER_ID, nullable=False)
    department_id = Column(Integer, nullable=False)
    
    trade_date = Column(DateTime(timezone=True), nullable=False)
    time_updated = Column(DateTime(timezone=True), nullable=False)
    
    volume = Column(VOLUME, nullable=False)
    price = Column(PRICE, nullable=False)
    currency = Column(String(3), nullable=False)
    side = Column(String(16), nullable=False)
    
    counterparty_id = Column(Integer, nullable=True)
    delivery_start = Column(DateTime(timezone=True), nullable=True)
    delivery_end = Column(DateTime(timezone=True), nullable=True)
    
    product_type = Column(String(32), nullable=False)
    source = Column(String(64), nullable=False)
    
    __table_args__ = (
        UniqueConstraint("trade_id", "trade_date", name="uq_trades_trade_id_trade_date"),
        Index("ix_trades_trade_date", "trade_date"),
    )


# =============================================================
# 2. EOD PRICES TABLE
# =============================================================

class EodPriceRecord(Base):
    """
    End-of-day settlement prices.
    
    Source: data_processing.normalizer_module
    No natural key: every import appends.
    """
    __tablename__ = "eod_prices"
    
    id = Column(SurrogateId, primary_key=True, autoincrement=True)
    
    contract_id = Column(Integer, nullable=False)
    customer_id = Column(Integer, nullable=False)
    trading_period = Column(Date, nullable=False)
    publication_time = Column(DateTime(timezone=True), nullable=False)
    price = Column(PRICE, nullable=False)
    currency = Column(String(3), nullable=False)
    price_source = Column(String(64), nullable=False)
    market_zone = Column(String(32), nullable=False)
    
    __table_args__ = (
        Index("ix_eod_prices_contract_period", "contract_id", "trading_period"),
    )


# =============================================================
# 3. POSITIONS TABLE
# =============================================================

POSITION_KEY_COLUMNS = (
    "contract_id",
    "customer_id",
    "book_id",
    "trader_id",
    "department_id",
    "product_type",
    "currency",
    "side",
)


class PositionRecord(Base):
    """
    Aggregated positions.
    
    Source: position_aggregation.engine
    Conflict target: the 8-attribute position key
    """
    __tablename__ = "positions"
    
    position_id = Column(SurrogateId, primary_key=True, autoincrement=True)
    
    contract_id = Column(Integer, nullable=False)
    customer_id = Column(Integer, nullable=False)
    book_id = Column(Integer, nullable=False)
    trader_id = Column(TRADER_ID, nullable=False)
    department_id = Column(Integer, nullable=False)
    product_type = Column(String(32), nullable=False)
    currency = Column(String(3), nullable=False)
    side = Column(String(16), nullable=False)
    
    volume = Column(VOLUME, nullable=False)
    time_updated = Column(DateTime(timezone=True), nullable=False)
    source = Column(String(64), nullable=False)
    
    __table_args__ = (
        UniqueConstraint(*POSITION_KEY_COLUMNS, name="uq_positions_key"),
    )
