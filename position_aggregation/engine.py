"""
Position Aggregation - Engine.

============================================================
PURPOSE
============================================================
Rolls trades up into positions keyed by
(contract_id, customer_id, book_id, trader_id, department_id,
 product_type, currency, side).

Per key:
- volume        Decimal sum of trade volumes
- time_updated  latest trade time_updated
- source        "Aggregated"

The aggregator is a one-shot job: it reads the most recent
trades, aggregates them and upserts positions. It never raises;
the result carries the outcome.

============================================================
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from adapters.event_bus import EventBus
from contracts.dtos import Position, PositionKey, Trade, position_key
from contracts.events import PositionsUpdatedEvent
from core.config import AggregatorConfig
from core.constants import AGGREGATED_SOURCE, TOPIC_POSITIONS_UPDATED
from core.exceptions import PipelineException
from database.engine import transaction_scope
from database.persistence import fetch_recent_trades, upsert_positions


logger = logging.getLogger(__name__)


def aggregate_positions(trades: Iterable[Trade]) -> List[Position]:
    """
    Group trades by position key.
    
    Positions come back in first-seen key order.
    """
    grouped: Dict[PositionKey, List[Trade]] = defaultdict(list)
    for trade in trades:
        grouped[position_key(trade)].append(trade)
    
    positions = []
    for key, members in grouped.items():
        positions.append(Position(
            **key._asdict(),
            volume=sum((trade.volume for trade in members), Decimal(0)),
            time_updated=max(trade.time_updated for trade in members),
            source=AGGREGATED_SOURCE,
        ))
    return positions


@dataclass
class AggregationResult:
    """Outcome of one aggregator run."""
    
    success: bool
    trades_read: int = 0
    positions_upserted: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trades_read": self.trades_read,
            "positions_upserted": self.positions_upserted,
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
        }


class PositionAggregator:
    """
    One-shot position aggregation job.
    
    When an event bus is supplied a PositionsUpdatedEvent is
    published after every successful run. A failed announcement is
    logged and leaves the result unchanged.
    """
    
    def __init__(
        self,
        session_factory: sessionmaker,
        config: Optional[AggregatorConfig] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or AggregatorConfig()
        self._bus = event_bus
    
    async def run(self) -> AggregationResult:
        start_time = time.time()
        logger.info(f"Running position aggregation | max_trades={self._config.max_trades}")
        
        try:
            with transaction_scope(self._session_factory) as session:
                trades = fetch_recent_trades(session, self._config.max_trades)
                positions = aggregate_positions(trades)
                upserted = upsert_positions(session, positions)
        except Exception as e:
            logger.error(f"Position aggregation failed: {e}", exc_info=True)
            return AggregationResult(
                success=False,
                duration_seconds=time.time() - start_time,
                error=str(e),
            )
        
        result = AggregationResult(
            success=True,
            trades_read=len(trades),
            positions_upserted=upserted,
            duration_seconds=time.time() - start_time,
        )
        logger.info(
            f"Position aggregation complete | trades={result.trades_read} | "
            f"positions={result.positions_upserted} | duration={result.duration_seconds:.2f}s"
        )
        
        if self._bus is not None:
            await self._announce(upserted)
        
        return result
    
    async def _announce(self, count: int) -> None:
        event = PositionsUpdatedEvent(
            count=count,
            updated_at=datetime.now(timezone.utc),
        )
        try:
            await self._bus.publish(TOPIC_POSITIONS_UPDATED, event.to_json_bytes())
        except PipelineException as e:
            logger.error(f"Failed to announce updated positions | count={count} | {e}")
