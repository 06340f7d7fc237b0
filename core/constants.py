"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Single source of truth for the fixed values shared by the
generator, publisher, normalizer and aggregator.

- Value domains for synthetic data
- File types, topics and bucket names
- CSV column layouts

============================================================
"""

from decimal import Decimal
from typing import Tuple


# ============================================================
# SOURCE TAGS
# ============================================================

SOURCE_SYSTEM = "MockedETRM"
"""Source tag written on generated trades and announcement metadata."""

AGGREGATED_SOURCE = "Aggregated"
"""Source tag written on every aggregated position."""

PRICE_SOURCE_EXCHANGE = "Exchange"


# ============================================================
# FILE TYPES & FORMATS
# ============================================================

FILE_TYPE_TRADES = "trades.csv"
FILE_TYPE_EOD_PRICES = "eod-prices.csv"
SUPPORTED_FILE_TYPES: Tuple[str, ...] = (FILE_TYPE_TRADES, FILE_TYPE_EOD_PRICES)

FORMAT_CSV = "csv"
CSV_CONTENT_TYPE = "text/csv"


# ============================================================
# MESSAGING
# ============================================================

TOPIC_RAW_IMPORTED = "etrm.raw.imported"
TOPIC_TRADES_PERSISTED = "etrm.normalized.trades.persisted"
TOPIC_POSITIONS_UPDATED = "etrm.positions.updated"

DEFAULT_BUCKET = "etrm-raw"


# ============================================================
# GENERATOR VALUE DOMAINS
# ============================================================

CONTRACT_IDS: Tuple[int, ...] = (101, 102, 103, 104, 105, 106, 107, 108, 109, 110)
CUSTOMER_IDS: Tuple[int, ...] = (201, 202, 203, 204, 205, 206, 207, 208)
BOOK_IDS: Tuple[int, ...] = (301, 302, 303, 304, 305)
TRADER_IDS: Tuple[Decimal, ...] = tuple(Decimal(v) for v in ("1.5", "2.3", "3.1", "4.2", "5.1"))
DEPARTMENT_IDS: Tuple[int, ...] = (401, 402, 403, 404, 405)
PRODUCT_TYPES: Tuple[str, ...] = ("Future", "Swap", "Option", "Forward")
CURRENCIES: Tuple[str, ...] = ("EUR", "USD", "GBP")
SIDES: Tuple[str, ...] = ("Buy", "Sell")
COUNTERPARTY_IDS: Tuple[int, ...] = (501, 502, 503, 504, 505, 506)
MARKET_ZONES: Tuple[str, ...] = ("EU-CENTRAL", "EU-WEST", "EU-NORTH", "US-EAST", "US-WEST")

REFERENCE_CURRENCY = "USD"
REFERENCE_BASE_PRICE = Decimal("70.0")
DEFAULT_BASE_PRICE = Decimal("75.0")

TRADE_PRICE_SPREAD = 10.0
"""Trade prices are drawn from base +/- this spread."""

EOD_PRICE_SPREAD = 7.5
"""EOD prices are drawn from base +/- this spread."""

TRADE_ID_SEED = 2000
"""Trade id counter start; the first issued id is TRADE_ID_SEED + 1."""

EOD_PUBLICATION_HOUR = 16

BUSINESS_HOURS_START = 8
BUSINESS_HOURS_END = 17


# ============================================================
# CSV LAYOUTS
# ============================================================

TRADE_COLUMNS: Tuple[str, ...] = (
    "trade_id",
    "contract_id",
    "customer_id",
    "book_id",
    "trader_id",
    "department_id",
    "trade_date",
    "time_updated",
    "volume",
    "price",
    "currency",
    "side",
    "counterparty_id",
    "delivery_start",
    "delivery_end",
    "product_type",
    "source",
)

EOD_PRICE_COLUMNS: Tuple[str, ...] = (
    "contract_id",
    "customer_id",
    "trading_period",
    "publication_time",
    "price",
    "currency",
    "price_source",
    "market_zone",
)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
"""Instants are rendered as ISO-8601 UTC with second precision."""

FILENAME_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


# ============================================================
# AGGREGATION
# ============================================================

DEFAULT_AGGREGATION_TRADE_CAP = 1000
