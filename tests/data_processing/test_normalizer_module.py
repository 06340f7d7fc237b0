"""
Normalizer Module Tests.

============================================================
PURPOSE
============================================================
End-to-end tests: publisher -> in-memory bus -> normalizer ->
SQLite database.

TEST CATEGORIES:
- Successful persistence of trades and EOD prices
- Whole-batch abort on malformed rows
- Unknown file types, checksum verification, missing objects
- Idempotent redelivery and optional persisted announcement

============================================================
"""

import logging
from datetime import datetime, timezone

import pytest

from adapters import InMemoryObjectStore
from contracts.events import RawImportedEvent, TradesPersistedEvent
from core.config import NormalizerConfig
from data_ingestion.csv_codec import trades_to_csv
from data_ingestion.generators import PriceGenerator, TradeGenerator
from data_ingestion.publisher import BatchPublisher, compute_checksum
from data_processing.normalizer_module import NormalizerModule, ProcessingState
from database.engine import get_db_session
from database.persistence import fetch_eod_prices, fetch_recent_trades


STAMP = datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)


def _trades_in_db(session_factory):
    with get_db_session(session_factory) as session:
        return fetch_recent_trades(session, 1000)


def _prices_in_db(session_factory):
    with get_db_session(session_factory) as session:
        return fetch_eod_prices(session)


def _last_event(bus) -> RawImportedEvent:
    return RawImportedEvent.from_json_bytes(bus.published[-1][1])


# ============================================================
# SUBSCRIBED PIPELINE
# ============================================================

class TestSubscribedPipeline:
    """Normalizer subscribed to the bus."""
    
    @pytest.mark.asyncio
    async def test_trades_persisted(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        await normalizer.start()
        trades = TradeGenerator(rng, clock=clock).generate_trades(6)
        
        await BatchPublisher(object_store, event_bus).import_trades(trades, STAMP)
        
        stored = sorted(_trades_in_db(session_factory), key=lambda t: t.trade_id)
        assert stored == trades
        assert normalizer.get_health_status()["records_persisted"] == 6
        assert normalizer.get_health_status()["status"] == "healthy"
    
    @pytest.mark.asyncio
    async def test_eod_prices_persisted(self, object_store, event_bus, session_factory, rng):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        await normalizer.start()
        prices = PriceGenerator(rng).generate_prices(STAMP.date())
        
        await BatchPublisher(object_store, event_bus).import_prices(prices, STAMP)
        
        assert _prices_in_db(session_factory) == prices
    
    @pytest.mark.asyncio
    async def test_stopped_normalizer_ignores_deliveries(
        self, object_store, event_bus, session_factory, rng, clock,
    ):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        await normalizer.start()
        await normalizer.stop()
        
        await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(2), STAMP,
        )
        
        assert _trades_in_db(session_factory) == []
        assert object_store.get_count == 0
        assert normalizer.get_health_status()["status"] == "stopped"
        assert normalizer.get_health_status()["processed_count"] == 0
    
    @pytest.mark.asyncio
    async def test_malformed_row_writes_nothing(
        self, object_store, event_bus, session_factory, rng, clock, caplog,
    ):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        await normalizer.start()
        trades = TradeGenerator(rng, clock=clock).generate_trades(4)
        lines = trades_to_csv(trades).splitlines()
        fields = lines[4].split(",")
        fields[9] = ""  # price of the 4th trade
        lines[4] = ",".join(fields)
        payload = "\n".join(lines) + "\n"
        
        with caplog.at_level(logging.ERROR):
            await BatchPublisher(object_store, event_bus).import_batch(payload, "trades.csv", STAMP)
        
        assert _trades_in_db(session_factory) == []
        assert normalizer.get_health_status()["failed_count"] == 1
        assert "Normalization failed" in caplog.text
        assert _last_event(event_bus).import_id in caplog.text


# ============================================================
# DIRECT HANDLING
# ============================================================

class TestHandleEvent:
    """Per-announcement state transitions."""
    
    @pytest.mark.asyncio
    async def test_persisted_state(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        publisher = BatchPublisher(object_store, event_bus)
        await publisher.import_trades(TradeGenerator(rng, clock=clock).generate_trades(3), STAMP)
        
        result = await normalizer.handle_message(event_bus.published[-1][1])
        
        assert result.state == ProcessingState.PERSISTED
        assert result.success
        assert result.records == 3
    
    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        publisher = BatchPublisher(object_store, event_bus)
        await publisher.import_trades(TradeGenerator(rng, clock=clock).generate_trades(5), STAMP)
        message = event_bus.published[-1][1]
        
        await normalizer.handle_message(message)
        await normalizer.handle_message(message)
        
        assert len(_trades_in_db(session_factory)) == 5
    
    @pytest.mark.asyncio
    async def test_eod_redelivery_appends(self, object_store, event_bus, session_factory, rng):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        prices = PriceGenerator(rng).generate_prices(STAMP.date())
        await BatchPublisher(object_store, event_bus).import_prices(prices, STAMP)
        message = event_bus.published[-1][1]
        
        await normalizer.handle_message(message)
        await normalizer.handle_message(message)
        
        assert len(_prices_in_db(session_factory)) == 2 * len(prices)
    
    @pytest.mark.asyncio
    async def test_unknown_file_type_skipped(self, object_store, event_bus, session_factory, caplog):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        event = await BatchPublisher(object_store, event_bus).import_batch(
            "a,b\n1,2\n", "positions.csv", STAMP,
        )
        
        with caplog.at_level(logging.WARNING):
            result = await normalizer.handle_event(event)
        
        assert result.state == ProcessingState.SKIPPED
        assert "Skipping unknown file type" in caplog.text
        assert object_store.get_count == 0
        assert normalizer.get_health_status()["skipped_count"] == 1
    
    @pytest.mark.asyncio
    async def test_checksum_mismatch(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        event = await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(2), STAMP,
        )
        original = await object_store.get(event.bucket, event.object_key)
        object_store.overwrite(event.bucket, event.object_key, original.replace(b"MockedETRM", b"MockedETRX"))
        
        result = await normalizer.handle_event(event)
        
        assert result.state == ProcessingState.FAILED
        assert "checksum" in result.error.lower()
        assert _trades_in_db(session_factory) == []
    
    @pytest.mark.asyncio
    async def test_size_mismatch(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        event = await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(2), STAMP,
        )
        original = await object_store.get(event.bucket, event.object_key)
        object_store.overwrite(event.bucket, event.object_key, original + b"\n")
        
        result = await normalizer.handle_event(event)
        
        assert result.state == ProcessingState.FAILED
        assert "size" in result.error.lower()
    
    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(
            object_store, event_bus, session_factory,
            NormalizerConfig(verify_checksum=False),
        )
        event = await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(2), STAMP,
        )
        original = await object_store.get(event.bucket, event.object_key)
        object_store.overwrite(event.bucket, event.object_key, original + b"\n")
        
        result = await normalizer.handle_event(event)
        
        assert result.state == ProcessingState.PERSISTED
        assert result.records == 2
    
    @pytest.mark.asyncio
    async def test_missing_object_fails_without_raising(self, event_bus, session_factory):
        store = InMemoryObjectStore()
        normalizer = NormalizerModule(store, event_bus, session_factory)
        event = RawImportedEvent(
            import_id="missing-1",
            bucket="etrm-raw",
            object_key="imports/nothing.csv",
            file_type="trades.csv",
            format="csv",
            checksum=compute_checksum(b""),
            size_bytes=0,
            imported_at=STAMP,
        )
        
        result = await normalizer.handle_event(event)
        
        assert result.state == ProcessingState.FAILED
        assert result.import_id == "missing-1"
    
    @pytest.mark.asyncio
    async def test_undecodable_message(self, object_store, event_bus, session_factory):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        
        result = await normalizer.handle_message(b"{not json")
        
        assert result.state == ProcessingState.FAILED
        assert result.import_id is None


# ============================================================
# PERSISTED ANNOUNCEMENT
# ============================================================

class TestPersistedAnnouncement:
    """Optional TradesPersistedEvent."""
    
    @pytest.mark.asyncio
    async def test_off_by_default(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(object_store, event_bus, session_factory)
        await normalizer.start()
        
        await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(2), STAMP,
        )
        
        assert event_bus.messages("etrm.normalized.trades.persisted") == []
    
    @pytest.mark.asyncio
    async def test_announces_trade_count(self, object_store, event_bus, session_factory, rng, clock):
        normalizer = NormalizerModule(
            object_store, event_bus, session_factory,
            NormalizerConfig(announce_persisted=True),
        )
        await normalizer.start()
        
        imported = await BatchPublisher(object_store, event_bus).import_trades(
            TradeGenerator(rng, clock=clock).generate_trades(3), STAMP,
        )
        
        messages = event_bus.messages("etrm.normalized.trades.persisted")
        assert len(messages) == 1
        event = TradesPersistedEvent.from_json_bytes(messages[0])
        assert event.import_id == imported.import_id
        assert event.count == 3
        assert event.event_type == "ETRM.Normalized.Trades.Persisted"
