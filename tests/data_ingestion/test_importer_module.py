"""
Importer Module Tests.

============================================================
PURPOSE
============================================================
Tests for the importer loop: EOD gating, cadence, batch
sizing, stop/cancel behaviour and the one-shot job.

============================================================
"""

import asyncio
import random
from datetime import date, datetime, timedelta, timezone

import pytest

from adapters import InMemoryObjectStore
from contracts.events import RawImportedEvent
from core.clock import MockClock
from core.config import ImporterConfig
from core.exceptions import ObjectStoreError
from data_ingestion.importer_module import ImporterModule, ImportKind
from data_ingestion.publisher import BatchPublisher
from data_processing.parsers import parse_trades_csv


def _events(bus):
    return [RawImportedEvent.from_json_bytes(payload) for _, payload in bus.published]


def _importer(object_store, event_bus, clock, **overrides):
    config = ImporterConfig(**overrides)
    publisher = BatchPublisher(object_store, event_bus, clock=clock)
    return ImporterModule(publisher, config, clock=clock, rng=random.Random(5))


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ============================================================
# EOD GATING
# ============================================================

class TestEodGating:
    """EOD prices are published once per UTC date at the publish hour."""
    
    @pytest.mark.asyncio
    async def test_48_hour_run_publishes_eod_twice(self, object_store, event_bus):
        start = datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)
        clock = MockClock(start)
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=600,
            max_trade_interval_seconds=600,
            use_business_hours_pattern=False,
        )
        
        while clock.now() < start + timedelta(hours=48):
            wait_seconds = await importer.run_iteration()
            clock.advance(seconds=wait_seconds)
        
        eod = [e for e in _events(event_bus) if e.file_type == "eod-prices.csv"]
        assert len(eod) == 2
        assert [e.imported_at.hour for e in eod] == [16, 16]
        assert importer.last_eod_date == date(2026, 3, 3)
    
    @pytest.mark.asyncio
    async def test_eod_published_before_trades(self, object_store, event_bus):
        clock = MockClock(datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc))
        importer = _importer(object_store, event_bus, clock)
        
        await importer.run_iteration()
        
        assert [e.file_type for e in _events(event_bus)] == ["eod-prices.csv", "trades.csv"]
    
    @pytest.mark.asyncio
    async def test_no_eod_outside_publish_hour(self, object_store, event_bus):
        clock = MockClock(datetime(2026, 3, 2, 15, 59, tzinfo=timezone.utc))
        importer = _importer(object_store, event_bus, clock)
        
        await importer.run_iteration()
        
        assert [e.file_type for e in _events(event_bus)] == ["trades.csv"]
        assert importer.last_eod_date is None


# ============================================================
# CADENCE
# ============================================================

class TestCadence:
    """Wait interval and batch sizing."""
    
    def test_business_hours_multiplier(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=100,
            max_trade_interval_seconds=100,
            business_hours_multiplier=0.5,
        )
        
        assert importer.next_wait_seconds(datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)) == 50.0
        assert importer.next_wait_seconds(datetime(2026, 3, 2, 16, 59, tzinfo=timezone.utc)) == 50.0
        assert importer.next_wait_seconds(datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)) == 100.0
        assert importer.next_wait_seconds(datetime(2026, 3, 2, 7, 59, tzinfo=timezone.utc)) == 100.0
    
    def test_pattern_disabled(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=100,
            max_trade_interval_seconds=100,
            use_business_hours_pattern=False,
        )
        
        assert importer.next_wait_seconds(datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)) == 100.0
    
    def test_wait_within_bounds(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=30,
            max_trade_interval_seconds=300,
            use_business_hours_pattern=False,
        )
        night = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
        
        waits = [importer.next_wait_seconds(night) for _ in range(200)]
        
        assert all(30 <= w <= 300 for w in waits)
    
    @pytest.mark.asyncio
    async def test_batch_size_from_config(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trades_per_batch=3,
            max_trades_per_batch=3,
        )
        
        await importer.run_iteration()
        
        event = _events(event_bus)[0]
        payload = await object_store.get(event.bucket, event.object_key)
        assert len(parse_trades_csv(payload.decode("utf-8"))) == 3


# ============================================================
# LIFECYCLE
# ============================================================

class TestLifecycle:
    """run_forever / stop / cancel."""
    
    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=3600,
            max_trade_interval_seconds=3600,
        )
        
        task = asyncio.create_task(importer.run_forever())
        await _wait_for(lambda: len(event_bus.published) >= 1)
        assert importer.is_running
        
        await importer.stop()
        await asyncio.wait_for(task, timeout=2.0)
        
        assert not importer.is_running
        assert len(event_bus.published) == 1
    
    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, object_store, event_bus, clock):
        importer = _importer(
            object_store, event_bus, clock,
            min_trade_interval_seconds=3600,
            max_trade_interval_seconds=3600,
        )
        
        task = asyncio.create_task(importer.run_forever())
        await _wait_for(lambda: len(event_bus.published) >= 1)
        task.cancel()
        
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not importer.is_running
    
    @pytest.mark.asyncio
    async def test_transient_error_propagates(self, event_bus, clock):
        importer = _importer(InMemoryObjectStore(fail_on_put=True), event_bus, clock)
        
        with pytest.raises(ObjectStoreError):
            await asyncio.wait_for(importer.run_forever(), timeout=2.0)
        
        assert not importer.is_running
        assert event_bus.published == []


# ============================================================
# ONE-SHOT JOB
# ============================================================

class TestRunOnce:
    """Tests for run_once."""
    
    @pytest.mark.asyncio
    async def test_trades(self, object_store, event_bus, clock):
        importer = _importer(object_store, event_bus, clock)
        
        result = await importer.run_once(ImportKind.TRADES)
        
        assert result.success
        assert 1 <= result.count <= 10
        assert result.import_id == _events(event_bus)[0].import_id
    
    @pytest.mark.asyncio
    async def test_eod_prices_accepts_string_kind(self, object_store, event_bus, clock):
        importer = _importer(object_store, event_bus, clock)
        
        result = await importer.run_once("eod-prices")
        
        assert result.success
        assert 5 <= result.count <= 15
        assert importer.last_eod_date == clock.today()
    
    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, event_bus, clock):
        importer = _importer(InMemoryObjectStore(fail_on_put=True), event_bus, clock)
        
        result = await importer.run_once(ImportKind.TRADES)
        
        assert not result.success
        assert "unavailable" in result.error
        assert event_bus.published == []


class TestHealthStatus:
    """Tests for get_health_status."""
    
    @pytest.mark.asyncio
    async def test_counters(self, object_store, event_bus):
        clock = MockClock(datetime(2026, 3, 2, 16, 5, tzinfo=timezone.utc))
        importer = _importer(
            object_store, event_bus, clock,
            min_trades_per_batch=2,
            max_trades_per_batch=2,
        )
        
        await importer.run_iteration()
        status = importer.get_health_status()
        
        assert status["status"] == "stopped"
        assert status["batches_published"] == 2
        assert status["trades_generated"] == 2
        assert 5 <= status["prices_generated"] <= 15
        assert status["last_eod_date"] == "2026-03-02"
