"""
Data Ingestion - Importer Module.

============================================================
RESPONSIBILITY
============================================================
Drives the generator and publisher on a realistic cadence.

Per iteration (now read from the injected clock):
1. At the EOD publish hour, once per UTC date: publish EOD prices
2. Generate and publish a trade batch
3. Wait a random interval, shortened during business hours

============================================================
ORCHESTRATOR INTERFACE
============================================================
- run_forever(): loop until stop() or task cancellation
- run_once(kind): import one batch, never raises
- stop(): interrupt the wait
- get_health_status(): report counters

Transient I/O errors raised inside run_forever() propagate;
the hosting process is expected to terminate.

============================================================
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.clock import ClockProtocol, SystemClock
from core.config import ImporterConfig
from core.constants import BUSINESS_HOURS_END, BUSINESS_HOURS_START

from .generators import PriceGenerator, TradeGenerator, TradeIdAllocator
from .publisher import BatchPublisher


logger = logging.getLogger(__name__)


# ============================================================
# TYPES
# ============================================================

class ImportKind(str, Enum):
    """Batch kinds the importer can produce."""
    
    TRADES = "trades"
    EOD_PRICES = "eod-prices"


@dataclass
class ImportOnceResult:
    """Outcome of a one-shot import."""
    
    kind: ImportKind
    success: bool
    import_id: Optional[str] = None
    count: int = 0
    error: Optional[str] = None


# ============================================================
# IMPORTER MODULE
# ============================================================

class ImporterModule:
    """
    Long-running trade/price importer.
    
    The RNG is shared with the generators so a seeded run is
    reproducible end to end.
    """
    
    def __init__(
        self,
        publisher: BatchPublisher,
        config: Optional[ImporterConfig] = None,
        clock: Optional[ClockProtocol] = None,
        rng: Optional[random.Random] = None,
        id_allocator: Optional[TradeIdAllocator] = None,
    ) -> None:
        self._config = config or ImporterConfig()
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random(self._config.random_seed)
        self._trade_generator = TradeGenerator(self._rng, id_allocator, self._clock)
        self._price_generator = PriceGenerator(self._rng)
        
        self._stop_event = asyncio.Event()
        self._running = False
        self._last_eod_date: Optional[date] = None
        
        # Counters
        self._batches_published = 0
        self._trades_generated = 0
        self._prices_generated = 0
        self._iterations = 0
    
    @property
    def last_eod_date(self) -> Optional[date]:
        return self._last_eod_date
    
    @property
    def is_running(self) -> bool:
        return self._running
    
    # --------------------------------------------------------
    # ITERATION
    # --------------------------------------------------------
    
    def should_publish_eod(self, now: datetime) -> bool:
        return (
            now.hour == self._config.eod_price_publish_hour
            and now.date() != self._last_eod_date
        )
    
    def next_wait_seconds(self, now: datetime) -> float:
        """Random wait in [min, max] seconds, scaled in business hours."""
        seconds = float(self._rng.randint(
            self._config.min_trade_interval_seconds,
            self._config.max_trade_interval_seconds,
        ))
        if (
            self._config.use_business_hours_pattern
            and BUSINESS_HOURS_START <= now.hour < BUSINESS_HOURS_END
        ):
            seconds *= self._config.business_hours_multiplier
        return seconds
    
    async def publish_eod_prices(self, now: datetime):
        prices = self._price_generator.generate_prices(now.date())
        event = await self._publisher.import_prices(prices, now)
        self._last_eod_date = now.date()
        self._batches_published += 1
        self._prices_generated += len(prices)
        logger.info(
            f"Published EOD prices | trading_date={now.date().isoformat()} | "
            f"count={len(prices)} | import_id={event.import_id}"
        )
        return event, len(prices)
    
    async def publish_trades(self, now: datetime, count: Optional[int] = None):
        if count is None:
            count = self._rng.randint(
                self._config.min_trades_per_batch,
                self._config.max_trades_per_batch,
            )
        trades = self._trade_generator.generate_trades(count)
        event = await self._publisher.import_trades(trades, now)
        self._batches_published += 1
        self._trades_generated += len(trades)
        logger.info(
            f"Published trades | count={len(trades)} | import_id={event.import_id}"
        )
        return event, len(trades)
    
    async def run_iteration(self) -> float:
        """
        Run one publish step.
        
        Returns:
            Seconds to wait before the next iteration
        """
        now = self._clock.now()
        
        if self.should_publish_eod(now):
            await self.publish_eod_prices(now)
        
        await self.publish_trades(now)
        self._iterations += 1
        
        return self.next_wait_seconds(now)
    
    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------
    
    async def run_forever(self) -> None:
        """
        Loop until stop() is called or the task is cancelled.
        
        Raises:
            TransientIOError: Object store or event bus unavailable
        """
        self._stop_event.clear()
        self._running = True
        logger.info(
            f"Importer started | interval={self._config.min_trade_interval_seconds}-"
            f"{self._config.max_trade_interval_seconds}s | "
            f"batch={self._config.min_trades_per_batch}-{self._config.max_trades_per_batch} | "
            f"eod_hour={self._config.eod_price_publish_hour}"
        )
        
        try:
            while not self._stop_event.is_set():
                wait_seconds = await self.run_iteration()
                logger.debug(f"Next batch in {wait_seconds:.1f}s")
                if await self._wait(wait_seconds):
                    break
            logger.info("Importer stopped gracefully")
        except asyncio.CancelledError:
            logger.info("Importer cancelled, stopping gracefully")
            raise
        finally:
            self._running = False
    
    async def _wait(self, seconds: float) -> bool:
        """Sleep; returns True if stop() interrupted the wait."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
    
    async def stop(self) -> None:
        logger.info("Stopping importer...")
        self._stop_event.set()
    
    async def run_once(self, kind: ImportKind = ImportKind.TRADES) -> ImportOnceResult:
        """
        Import a single batch as a job.
        
        Any failure is logged and reported in the result.
        """
        kind = ImportKind(kind)
        now = self._clock.now()
        try:
            if kind == ImportKind.EOD_PRICES:
                event, count = await self.publish_eod_prices(now)
            else:
                event, count = await self.publish_trades(now)
        except Exception as e:
            logger.error(f"One-shot import of {kind.value} failed: {e}", exc_info=True)
            return ImportOnceResult(kind=kind, success=False, error=str(e))
        
        return ImportOnceResult(
            kind=kind,
            success=True,
            import_id=event.import_id,
            count=count,
        )
    
    def get_health_status(self) -> Dict[str, Any]:
        """Get health status for monitoring."""
        return {
            "status": "running" if self._running else "stopped",
            "module": "ImporterModule",
            "iterations": self._iterations,
            "batches_published": self._batches_published,
            "trades_generated": self._trades_generated,
            "prices_generated": self._prices_generated,
            "last_eod_date": self._last_eod_date.isoformat() if self._last_eod_date else None,
        }
