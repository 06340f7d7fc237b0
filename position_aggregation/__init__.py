"""
Position Aggregation Package.

Rolls normalized trades up into positions.
"""

from position_aggregation.engine import (
    AggregationResult,
    PositionAggregator,
    aggregate_positions,
)


__all__ = [
    "AggregationResult",
    "PositionAggregator",
    "aggregate_positions",
]
