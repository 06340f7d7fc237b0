"""
Contracts - Domain Records.

Plain dataclasses passed between pipeline stages. Every
datetime is timezone-aware UTC; every monetary or volume
amount is a Decimal.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple, Optional, Tuple


@dataclass
class Trade:
    """One executed deal, identified by (trade_id, trade_date)."""

    trade_id: int
    contract_id: int
    customer_id: int
    book_id: int
    trader_id: Decimal
    department_id: int
    trade_date: datetime
    time_updated: datetime
    volume: Decimal
    price: Decimal
    currency: str
    side: str
    counterparty_id: Optional[int]
    delivery_start: Optional[datetime]
    delivery_end: Optional[datetime]
    product_type: str
    source: str

    @property
    def natural_key(self) -> Tuple[int, datetime]:
        return (self.trade_id, self.trade_date)


@dataclass
class EndOfDaySettlementPrice:
    """Settlement quote for a contract/customer on a trading period."""

    contract_id: int
    customer_id: int
    trading_period: date
    publication_time: datetime
    price: Decimal
    currency: str
    price_source: str
    market_zone: str


class PositionKey(NamedTuple):
    """Grouping key shared by every trade rolled into one position."""

    contract_id: int
    customer_id: int
    book_id: int
    trader_id: Decimal
    department_id: int
    product_type: str
    currency: str
    side: str


def position_key(trade: Trade) -> PositionKey:
    """Extract the 8-attribute grouping key of a trade."""
    return PositionKey(
        contract_id=trade.contract_id,
        customer_id=trade.customer_id,
        book_id=trade.book_id,
        trader_id=trade.trader_id,
        department_id=trade.department_id,
        product_type=trade.product_type,
        currency=trade.currency,
        side=trade.side,
    )


@dataclass
class Position:
    """Volume rollup over all trades sharing a PositionKey."""

    contract_id: int
    customer_id: int
    book_id: int
    trader_id: Decimal
    department_id: int
    product_type: str
    currency: str
    side: str
    volume: Decimal
    time_updated: datetime
    source: str
    position_id: Optional[int] = None

    @property
    def key(self) -> PositionKey:
        return PositionKey(
            self.contract_id,
            self.customer_id,
            self.book_id,
            self.trader_id,
            self.department_id,
            self.product_type,
            self.currency,
            self.side,
        )
