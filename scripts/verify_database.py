"""
Database Verification Script.

============================================================
VERIFY END-TO-END PERSISTENCE
============================================================

This script:
1. Connects to the configured database (or SQLite in memory)
2. Creates all pipeline tables
3. Publishes one trades batch and one EOD batch through the
   in-memory object store and event bus into the normalizer,
   then runs the aggregator
4. Prints row counts for every pipeline table

EXIT CODES:
- 0: Every table has data, persistence verified
- 1: Database connection failed
- 2: Table creation failed
- 3: Pipeline run failed
- 4: Verification failed (tables empty)

============================================================
"""

import argparse
import asyncio
import logging
import random
import sys
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine

from adapters.event_bus import InMemoryEventBus
from adapters.object_store import InMemoryObjectStore
from core.config import DatabaseConfig
from data_ingestion.generators import PriceGenerator, TradeGenerator
from data_ingestion.publisher import BatchPublisher
from data_processing.normalizer_module import NormalizerModule
from database.engine import (
    create_all_tables,
    create_database_engine,
    create_in_memory_engine,
    get_session_factory,
    get_table_row_counts,
    verify_database_connection,
)
from position_aggregation.engine import PositionAggregator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("verify_database")


SAMPLE_TRADE_COUNT = 10


async def run_sample_pipeline(engine: Engine, seed: int = 42) -> bool:
    """Push one trades batch and one EOD batch through the pipeline."""
    session_factory = get_session_factory(engine)
    object_store = InMemoryObjectStore()
    event_bus = InMemoryEventBus()
    
    normalizer = NormalizerModule(object_store, event_bus, session_factory)
    await normalizer.start()
    
    rng = random.Random(seed)
    publisher = BatchPublisher(object_store, event_bus)
    trades_event = await publisher.import_trades(TradeGenerator(rng).generate_trades(SAMPLE_TRADE_COUNT))
    prices = PriceGenerator(rng).generate_prices(trades_event.imported_at.date())
    await publisher.import_prices(prices)
    
    status = normalizer.get_health_status()
    if status["failed_count"]:
        logger.error(f"Normalizer reported failures: {status}")
        return False
    
    result = await PositionAggregator(session_factory).run()
    return result.success


def print_verification_report(counts: Dict[str, int]) -> bool:
    print("\n" + "-" * 50)
    print(f"{'TABLE':<30}{'ROWS':>20}")
    print("-" * 50)
    
    empty: List[str] = []
    for table, count in sorted(counts.items()):
        marker = "OK" if count > 0 else "EMPTY"
        print(f"{table:<30}{count:>14}  [{marker}]")
        if count <= 0:
            empty.append(table)
    print("-" * 50)
    
    if empty:
        print(f"Empty tables: {', '.join(empty)}")
    return not empty


def main(argv: Optional[List[str]] = None) -> int:
    """Main verification function."""
    parser = argparse.ArgumentParser(description="Verify ETRM database persistence")
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Verify against an in-memory SQLite database",
    )
    args = parser.parse_args(argv)
    
    print("\n" + "=" * 70)
    print("STARTING DATABASE PERSISTENCE VERIFICATION")
    print("=" * 70)
    
    # Step 1: Connect
    print("\n[1/4] Connecting to database...")
    try:
        if args.in_memory:
            engine = create_in_memory_engine()
        else:
            engine = create_database_engine(DatabaseConfig.from_env())
        verify_database_connection(engine)
        print("  [OK] Database connection verified")
    except Exception as e:
        print(f"  [FAIL] Database connection failed: {e}")
        return 1
    
    try:
        # Step 2: Tables
        print("\n[2/4] Creating tables...")
        try:
            create_all_tables(engine)
            print("  [OK] Tables created")
        except Exception as e:
            print(f"  [FAIL] Table creation failed: {e}")
            return 2
        
        # Step 3: Pipeline
        print("\n[3/4] Running sample pipeline...")
        try:
            if not asyncio.run(run_sample_pipeline(engine)):
                print("  [FAIL] Sample pipeline reported a failure")
                return 3
            print("  [OK] Sample pipeline completed")
        except Exception as e:
            logger.error(f"Sample pipeline failed: {e}", exc_info=True)
            print(f"  [FAIL] Sample pipeline failed: {e}")
            return 3
        
        # Step 4: Counts
        print("\n[4/4] Verifying database contents...")
        if print_verification_report(get_table_row_counts(engine)):
            print("\n" + "=" * 70)
            print("DATABASE PERSISTENCE VERIFICATION PASSED")
            print("=" * 70)
            return 0
        
        print("\n" + "=" * 70)
        print("DATABASE PERSISTENCE VERIFICATION FAILED")
        print("=" * 70)
        return 4
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
