"""
Data Ingestion Package.

Synthetic trade/price generation and the import step that
stores batches and announces them.

Modules:
- generators: Constrained-random trades and EOD prices
- csv_codec: CSV serialization
- publisher: Object store upload + announcement
- importer_module: Long-running importer and one-shot job
"""

from data_ingestion.generators import (
    TradeIdAllocator,
    TradeGenerator,
    PriceGenerator,
    add_months,
    round_price,
)
from data_ingestion.csv_codec import trades_to_csv, prices_to_csv
from data_ingestion.publisher import BatchPublisher, compute_checksum, build_object_key
from data_ingestion.importer_module import ImporterModule, ImportKind, ImportOnceResult


__all__ = [
    # Generators
    "TradeIdAllocator",
    "TradeGenerator",
    "PriceGenerator",
    "add_months",
    "round_price",
    # Serialization
    "trades_to_csv",
    "prices_to_csv",
    # Publishing
    "BatchPublisher",
    "compute_checksum",
    "build_object_key",
    # Service
    "ImporterModule",
    "ImportKind",
    "ImportOnceResult",
]
