"""
Data Processing - CSV Parsers.

============================================================
RESPONSIBILITY
============================================================
Turns raw CSV payloads into typed domain records.

- Header-driven, case-insensitive column lookup
- Every declared column must be present in the header
- Strict coercion; the first bad field aborts the batch
- All instants converted to UTC

============================================================
COERCION RULES
============================================================
int        [+-]digits, base 10
decimal    [+-]digits[.digits], no grouping, no exponent
instant    ISO-8601; trailing Z accepted; naive means UTC
optional   empty string -> None
currency   upper-cased
side       buy/sell (any case) -> Buy/Sell, anything else kept

============================================================
"""

import csv
import io
import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Sequence

from contracts.dtos import EndOfDaySettlementPrice, Trade
from core.constants import (
    EOD_PRICE_COLUMNS,
    FILE_TYPE_EOD_PRICES,
    FILE_TYPE_TRADES,
    TRADE_COLUMNS,
)
from core.exceptions import FieldParseError, SchemaValidationError, UnknownFileTypeError


logger = logging.getLogger(__name__)


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_DECIMAL_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

SIDE_MAP = {"buy": "Buy", "sell": "Sell"}


# ============================================================
# FIELD COERCION
# ============================================================

def normalize_side(value: str) -> str:
    """Map buy/sell in any case to Buy/Sell; other literals pass through."""
    canonical = SIDE_MAP.get(value.strip().lower())
    if canonical is None:
        logger.debug(f"Unrecognized side literal kept as is: {value!r}")
        return value
    return canonical


def parse_int(value: str, column: str, line_number: int, int64: bool = False) -> int:
    text = value.strip()
    if not _INT_PATTERN.fullmatch(text):
        raise FieldParseError(
            f"Invalid integer in column '{column}' at line {line_number}: {value!r}",
            column=column, line_number=line_number, value=value,
        )
    result = int(text)
    if int64 and not INT64_MIN <= result <= INT64_MAX:
        raise FieldParseError(
            f"Integer out of 64-bit range in column '{column}' at line {line_number}",
            column=column, line_number=line_number, value=value,
        )
    return result


def parse_decimal(value: str, column: str, line_number: int) -> Decimal:
    text = value.strip()
    if not _DECIMAL_PATTERN.fullmatch(text):
        raise FieldParseError(
            f"Invalid decimal in column '{column}' at line {line_number}: {value!r}",
            column=column, line_number=line_number, value=value,
        )
    try:
        return Decimal(text)
    except InvalidOperation as e:
        raise FieldParseError(
            f"Invalid decimal in column '{column}' at line {line_number}: {value!r}",
            column=column, line_number=line_number, value=value, cause=e,
        ) from e


def parse_instant(value: str, column: str, line_number: int) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        result = datetime.fromisoformat(text)
    except ValueError as e:
        raise FieldParseError(
            f"Invalid timestamp in column '{column}' at line {line_number}: {value!r}",
            column=column, line_number=line_number, value=value, cause=e,
        ) from e
    if result.tzinfo is None:
        return result.replace(tzinfo=timezone.utc)
    return result.astimezone(timezone.utc)


def parse_date(value: str, column: str, line_number: int) -> date:
    return parse_instant(value, column, line_number).date()


# ============================================================
# ROW ACCESS
# ============================================================

class _Row:
    """One data row addressed by declared column name."""
    
    def __init__(self, values: Sequence[str], index: Dict[str, int], line_number: int) -> None:
        self._values = values
        self._index = index
        self.line_number = line_number
    
    def optional(self, column: str) -> Optional[str]:
        position = self._index[column]
        if position >= len(self._values):
            return None
        value = self._values[position].strip()
        return value or None
    
    def required(self, column: str) -> str:
        value = self.optional(column)
        if value is None:
            raise FieldParseError(
                f"Missing value in column '{column}' at line {self.line_number}",
                column=column, line_number=self.line_number,
            )
        return value
    
    def as_int(self, column: str, int64: bool = False) -> int:
        return parse_int(self.required(column), column, self.line_number, int64=int64)
    
    def as_optional_int(self, column: str) -> Optional[int]:
        value = self.optional(column)
        return None if value is None else parse_int(value, column, self.line_number)
    
    def as_decimal(self, column: str) -> Decimal:
        return parse_decimal(self.required(column), column, self.line_number)
    
    def as_instant(self, column: str) -> datetime:
        return parse_instant(self.required(column), column, self.line_number)
    
    def as_optional_instant(self, column: str) -> Optional[datetime]:
        value = self.optional(column)
        return None if value is None else parse_instant(value, column, self.line_number)
    
    def as_date(self, column: str) -> date:
        return parse_date(self.required(column), column, self.line_number)


def _read_rows(payload: str, columns: Sequence[str]) -> List[_Row]:
    """
    Read the header and every non-blank data row.
    
    Raises:
        SchemaValidationError: A declared column is absent from the header
    """
    reader = csv.reader(io.StringIO(payload))
    header = next(reader, None) or []
    index = {name.strip().lower(): position for position, name in enumerate(header)}
    
    missing = [column for column in columns if column not in index]
    if missing:
        raise SchemaValidationError(
            f"Missing required columns: {', '.join(missing)}",
            missing_columns=missing,
        )
    
    rows = []
    for values in reader:
        if not any(value.strip() for value in values):
            continue
        rows.append(_Row(values, index, reader.line_num))
    return rows


# ============================================================
# PARSERS
# ============================================================

def parse_trades_csv(payload: str) -> List[Trade]:
    """
    Parse a trades payload.
    
    Raises:
        SchemaValidationError: Header lacks a declared column
        FieldParseError: A field is missing or malformed
    """
    trades = []
    for row in _read_rows(payload, TRADE_COLUMNS):
        trades.append(Trade(
            trade_id=row.as_int("trade_id", int64=True),
            contract_id=row.as_int("contract_id"),
            customer_id=row.as_int("customer_id"),
            book_id=row.as_int("book_id"),
            trader_id=row.as_decimal("trader_id"),
            department_id=row.as_int("department_id"),
            trade_date=row.as_instant("trade_date"),
            time_updated=row.as_instant("time_updated"),
            volume=row.as_decimal("volume"),
            price=row.as_decimal("price"),
            currency=row.required("currency").upper(),
            side=normalize_side(row.required("side")),
            counterparty_id=row.as_optional_int("counterparty_id"),
            delivery_start=row.as_optional_instant("delivery_start"),
            delivery_end=row.as_optional_instant("delivery_end"),
            product_type=row.required("product_type"),
            source=row.required("source"),
        ))
    return trades


def parse_eod_prices_csv(payload: str) -> List[EndOfDaySettlementPrice]:
    """
    Parse an EOD prices payload.
    
    Raises:
        SchemaValidationError: Header lacks a declared column
        FieldParseError: A field is missing or malformed
    """
    prices = []
    for row in _read_rows(payload, EOD_PRICE_COLUMNS):
        prices.append(EndOfDaySettlementPrice(
            contract_id=row.as_int("contract_id"),
            customer_id=row.as_int("customer_id"),
            trading_period=row.as_date("trading_period"),
            publication_time=row.as_instant("publication_time"),
            price=row.as_decimal("price"),
            currency=row.required("currency").upper(),
            price_source=row.required("price_source"),
            market_zone=row.required("market_zone"),
        ))
    return prices


PARSERS: Dict[str, Callable[[str], list]] = {
    FILE_TYPE_TRADES: parse_trades_csv,
    FILE_TYPE_EOD_PRICES: parse_eod_prices_csv,
}


def get_parser(file_type: str) -> Callable[[str], list]:
    """
    Raises:
        UnknownFileTypeError: No parser registered for file_type
    """
    try:
        return PARSERS[file_type]
    except KeyError:
        raise UnknownFileTypeError(file_type) from None
