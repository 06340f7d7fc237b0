"""
Data Ingestion - Synthetic Generators.

============================================================
RESPONSIBILITY
============================================================
Produces constrained-random trades and EOD settlement prices.

- Values drawn from the fixed domains in core.constants
- Randomness comes from an injected random.Random
- Trade ids come from an instance-owned, lock-protected counter

============================================================
"""

import calendar
import logging
import random
import threading
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import List, Optional

from contracts.dtos import EndOfDaySettlementPrice, Trade
from core.clock import ClockProtocol, SystemClock
from core.constants import (
    BOOK_IDS,
    CONTRACT_IDS,
    COUNTERPARTY_IDS,
    CURRENCIES,
    CUSTOMER_IDS,
    DEFAULT_BASE_PRICE,
    DEPARTMENT_IDS,
    EOD_PRICE_SPREAD,
    EOD_PUBLICATION_HOUR,
    MARKET_ZONES,
    PRICE_SOURCE_EXCHANGE,
    PRODUCT_TYPES,
    REFERENCE_BASE_PRICE,
    REFERENCE_CURRENCY,
    SIDES,
    SOURCE_SYSTEM,
    TRADE_ID_SEED,
    TRADE_PRICE_SPREAD,
    TRADER_IDS,
)


logger = logging.getLogger(__name__)


CENT = Decimal("0.01")

MIN_TRADE_VOLUME = 100
MAX_TRADE_VOLUME = 4999

MIN_EOD_PRICES = 5
MAX_EOD_PRICES = 15


# ============================================================
# HELPERS
# ============================================================

def round_price(value: float) -> Decimal:
    """Round to cents using banker's rounding."""
    return Decimal(repr(value)).quantize(CENT, rounding=ROUND_HALF_EVEN)


def base_price(currency: str) -> Decimal:
    if currency == REFERENCE_CURRENCY:
        return REFERENCE_BASE_PRICE
    return DEFAULT_BASE_PRICE


def add_months(value: datetime, months: int) -> datetime:
    """
    Calendar month arithmetic.
    
    The day is clamped to the last day of the target month,
    so Jan 31 + 1 month is Feb 28 (or 29).
    """
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# ============================================================
# TRADE ID ALLOCATOR
# ============================================================

class TradeIdAllocator:
    """
    Thread-safe monotonically increasing trade id source.
    
    Every call to next_id() returns a distinct value; ids are
    issued without gaps starting at seed + 1.
    """
    
    def __init__(self, seed: int = TRADE_ID_SEED) -> None:
        self._last = seed
        self._lock = threading.Lock()
    
    def next_id(self) -> int:
        with self._lock:
            self._last += 1
            return self._last
    
    @property
    def last_issued(self) -> int:
        with self._lock:
            return self._last


# ============================================================
# TRADE GENERATOR
# ============================================================

class TradeGenerator:
    """Builds batches of synthetic trades."""
    
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        id_allocator: Optional[TradeIdAllocator] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._ids = id_allocator or TradeIdAllocator()
        self._clock = clock or SystemClock()
    
    def generate_trades(self, count: int) -> List[Trade]:
        """
        Generate `count` trades stamped with the current time.
        
        Timestamps are truncated to whole seconds.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        
        now = self._clock.now().replace(microsecond=0)
        trades = [self._generate_trade(now) for _ in range(count)]
        
        logger.debug(f"Generated {len(trades)} trades")
        return trades
    
    def _generate_trade(self, now: datetime) -> Trade:
        rng = self._rng
        currency = rng.choice(CURRENCIES)
        price = round_price(
            float(base_price(currency)) + rng.uniform(-TRADE_PRICE_SPREAD, TRADE_PRICE_SPREAD)
        )
        delivery_start = add_months(now, rng.randrange(1, 12))
        delivery_end = add_months(delivery_start, rng.randrange(1, 6))
        
        return Trade(
            trade_id=self._ids.next_id(),
            contract_id=rng.choice(CONTRACT_IDS),
            customer_id=rng.choice(CUSTOMER_IDS),
            book_id=rng.choice(BOOK_IDS),
            trader_id=rng.choice(TRADER_IDS),
            department_id=rng.choice(DEPARTMENT_IDS),
            trade_date=now,
            time_updated=now,
            volume=Decimal(rng.randint(MIN_TRADE_VOLUME, MAX_TRADE_VOLUME)),
            price=price,
            currency=currency,
            side=rng.choice(SIDES),
            counterparty_id=rng.choice(COUNTERPARTY_IDS),
            delivery_start=delivery_start,
            delivery_end=delivery_end,
            product_type=rng.choice(PRODUCT_TYPES),
            source=SOURCE_SYSTEM,
        )


# ============================================================
# PRICE GENERATOR
# ============================================================

class PriceGenerator:
    """Builds EOD settlement price batches."""
    
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
    
    def generate_prices(self, trading_date: date) -> List[EndOfDaySettlementPrice]:
        """
        Generate between 5 and 15 prices for one trading day.
        
        Every price is published at 16:00 UTC of trading_date.
        """
        rng = self._rng
        publication_time = datetime.combine(
            trading_date, time(EOD_PUBLICATION_HOUR), tzinfo=timezone.utc,
        )
        count = rng.randint(MIN_EOD_PRICES, MAX_EOD_PRICES)
        
        prices = []
        for _ in range(count):
            currency = rng.choice(CURRENCIES)
            prices.append(EndOfDaySettlementPrice(
                contract_id=rng.choice(CONTRACT_IDS),
                customer_id=rng.choice(CUSTOMER_IDS),
                trading_period=trading_date,
                publication_time=publication_time,
                price=round_price(
                    float(base_price(currency)) + rng.uniform(-EOD_PRICE_SPREAD, EOD_PRICE_SPREAD)
                ),
                currency=currency,
                price_source=PRICE_SOURCE_EXCHANGE,
                market_zone=rng.choice(MARKET_ZONES),
            ))
        
        logger.debug(f"Generated {len(prices)} EOD prices for {trading_date.isoformat()}")
        return prices
