"""
Data Ingestion - CSV Serialization.

Fixed headers and column order; instants as
yyyy-MM-ddTHH:mm:ssZ, decimals in plain notation and absent
optionals as empty strings.
"""

import csv
import io
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Sequence

from contracts.dtos import EndOfDaySettlementPrice, Trade
from core.constants import EOD_PRICE_COLUMNS, TIMESTAMP_FORMAT, TRADE_COLUMNS


def format_instant(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def format_trading_period(value: date) -> str:
    return value.strftime("%Y-%m-%d") + "T00:00:00Z"


def format_decimal(value: Decimal) -> str:
    return format(value, "f")


def format_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_instant(value)
    if isinstance(value, Decimal):
        return format_decimal(value)
    return str(value)


def _write_csv(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([format_field(value) for value in row])
    return buffer.getvalue()


def trades_to_csv(trades: Iterable[Trade]) -> str:
    return _write_csv(
        TRADE_COLUMNS,
        ([getattr(trade, column) for column in TRADE_COLUMNS] for trade in trades),
    )


def prices_to_csv(prices: Iterable[EndOfDaySettlementPrice]) -> str:
    rows = []
    for price in prices:
        rows.append([
            price.contract_id,
            price.customer_id,
            format_trading_period(price.trading_period),
            price.publication_time,
            price.price,
            price.currency,
            price.price_source,
            price.market_zone,
        ])
    return _write_csv(EOD_PRICE_COLUMNS, rows)
