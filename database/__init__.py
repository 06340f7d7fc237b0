"""
Database Package Initialization.

============================================================
NORMALIZED ETRM STORE
============================================================

Relational persistence for trades, EOD prices and positions.
All writes go through explicit transactions; every failure
raises DatabasePersistenceError.

============================================================
"""

# Core engine and session management
from .engine import (
    Base,
    IN_MEMORY_URL,
    create_database_engine,
    create_in_memory_engine,
    get_session_factory,
    get_db_session,
    transaction_scope,
    verify_database_connection,
    create_all_tables,
    get_table_row_counts,
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

# ORM models
from .models import (
    TradeRecord,
    EodPriceRecord,
    PositionRecord,
)

# Persistence functions
from .persistence import (
    upsert_trades,
    insert_eod_prices,
    upsert_positions,
    fetch_recent_trades,
    fetch_eod_prices,
    fetch_positions,
)


__all__ = [
    "Base",
    "IN_MEMORY_URL",
    "create_database_engine",
    "create_in_memory_engine",
    "get_session_factory",
    "get_db_session",
    "transaction_scope",
    "verify_database_connection",
    "create_all_tables",
    "get_table_row_counts",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
    "TradeRecord",
    "EodPriceRecord",
    "PositionRecord",
    "upsert_trades",
    "insert_eod_prices",
    "upsert_positions",
    "fetch_recent_trades",
    "fetch_eod_prices",
    "fetch_positions",
]
