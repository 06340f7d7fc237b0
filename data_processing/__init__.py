"""
Data Processing Package.

Parses announced raw payloads into typed records and
persists them.

Modules:
- parsers: CSV parsing with strict field coercion
- normalizer_module: Event-driven normalizer service
"""

from data_processing.parsers import (
    PARSERS,
    get_parser,
    normalize_side,
    parse_trades_csv,
    parse_eod_prices_csv,
)
from data_processing.normalizer_module import (
    NormalizerModule,
    NormalizationResult,
    ProcessingState,
)


__all__ = [
    "PARSERS",
    "get_parser",
    "normalize_side",
    "parse_trades_csv",
    "parse_eod_prices_csv",
    "NormalizerModule",
    "NormalizationResult",
    "ProcessingState",
]
