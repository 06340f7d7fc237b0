"""
Contracts Package.

============================================================
PURPOSE
============================================================
Shared record and event shapes exchanged between the
importer, normalizer and aggregator.

- dtos: Trade, EndOfDaySettlementPrice, Position
- events: announcement and completion events (JSON wire format)

============================================================
"""

from .dtos import (
    Trade,
    EndOfDaySettlementPrice,
    Position,
    PositionKey,
    position_key,
)
from .events import (
    RawImportedEvent,
    TradesPersistedEvent,
    PositionsUpdatedEvent,
)

__all__ = [
    "Trade",
    "EndOfDaySettlementPrice",
    "Position",
    "PositionKey",
    "position_key",
    "RawImportedEvent",
    "TradesPersistedEvent",
    "PositionsUpdatedEvent",
]
