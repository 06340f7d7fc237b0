"""
Data Processing - Normalizer Module.

============================================================
PURPOSE
============================================================
Consumes import announcements, fetches the raw payload,
parses it and persists the typed records.

STATES (per message):
RECEIVED -> FETCHED -> PARSED -> PERSISTED
any step may end in FAILED; unknown file types end in SKIPPED

GUARANTEES:
- Parsing completes for every row before any write
- One transaction per batch; one bad row writes nothing
- Trades are upserted on (trade_id, trade_date)
- The handler never raises; failures are logged and dropped

============================================================
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from adapters.event_bus import EventBus
from adapters.object_store import ObjectStore
from contracts.events import RawImportedEvent, TradesPersistedEvent
from core.config import NormalizerConfig
from core.constants import (
    FILE_TYPE_EOD_PRICES,
    FILE_TYPE_TRADES,
    TOPIC_RAW_IMPORTED,
    TOPIC_TRADES_PERSISTED,
)
from core.exceptions import ChecksumMismatchError, PipelineException, UnknownFileTypeError
from data_ingestion.publisher import compute_checksum
from database.engine import transaction_scope
from database.persistence import insert_eod_prices, upsert_trades

from .parsers import get_parser


logger = logging.getLogger(__name__)


class ProcessingState(str, Enum):
    """Lifecycle of one announcement."""
    
    RECEIVED = "received"
    FETCHED = "fetched"
    PARSED = "parsed"
    PERSISTED = "persisted"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NormalizationResult:
    """Outcome of handling one announcement."""
    
    import_id: Optional[str]
    file_type: Optional[str]
    state: ProcessingState
    records: int = 0
    error: Optional[str] = None
    
    @property
    def success(self) -> bool:
        return self.state == ProcessingState.PERSISTED


class NormalizerModule:
    """
    Event-driven normalizer.
    
    ============================================================
    ORCHESTRATOR INTERFACE
    ============================================================
    - start(): subscribe to etrm.raw.imported
    - stop(): stop accepting messages (later deliveries are ignored)
    - get_health_status(): report counters
    
    ============================================================
    """
    
    def __init__(
        self,
        object_store: ObjectStore,
        event_bus: EventBus,
        session_factory: sessionmaker,
        config: Optional[NormalizerConfig] = None,
    ) -> None:
        self._store = object_store
        self._bus = event_bus
        self._session_factory = session_factory
        self._config = config or NormalizerConfig()
        self._running = False
        
        self._processed_count = 0
        self._failed_count = 0
        self._skipped_count = 0
        self._records_persisted = 0
        self._last_result: Optional[NormalizationResult] = None
        
        logger.info(
            f"NormalizerModule initialized | verify_checksum={self._config.verify_checksum} | "
            f"announce_persisted={self._config.announce_persisted}"
        )
    
    # --------------------------------------------------------
    # ORCHESTRATOR INTERFACE
    # --------------------------------------------------------
    
    async def start(self) -> None:
        logger.info("Starting NormalizerModule...")
        self._running = True
        await self._bus.subscribe(TOPIC_RAW_IMPORTED, self._on_message)
        logger.info(f"NormalizerModule started, listening on {TOPIC_RAW_IMPORTED}")
    
    async def stop(self) -> None:
        logger.info("Stopping NormalizerModule...")
        self._running = False
        logger.info("NormalizerModule stopped")
    
    def get_health_status(self) -> Dict[str, Any]:
        """Get health status for monitoring."""
        return {
            "status": "healthy" if self._running else "stopped",
            "module": "NormalizerModule",
            "processed_count": self._processed_count,
            "failed_count": self._failed_count,
            "skipped_count": self._skipped_count,
            "records_persisted": self._records_persisted,
            "last_import_id": self._last_result.import_id if self._last_result else None,
            "last_state": self._last_result.state.value if self._last_result else None,
        }
    
    # --------------------------------------------------------
    # MESSAGE HANDLING
    # --------------------------------------------------------
    
    async def _on_message(self, payload: bytes) -> None:
        # The subscription outlives stop(); drop deliveries once stopped
        if not self._running:
            logger.debug(f"NormalizerModule stopped, ignoring message ({len(payload)} bytes)")
            return
        await self.handle_message(payload)
    
    async def handle_message(self, payload: bytes) -> NormalizationResult:
        """Bus callback: decode the announcement and process it."""
        try:
            event = RawImportedEvent.from_json_bytes(payload)
        except ValidationError as e:
            logger.error(f"Discarding undecodable announcement: {e}")
            return self._record(NormalizationResult(
                import_id=None, file_type=None,
                state=ProcessingState.FAILED, error=str(e),
            ))
        return await self.handle_event(event)
    
    async def handle_event(self, event: RawImportedEvent) -> NormalizationResult:
        """
        Process one announcement end to end.
        
        Never raises; the returned result carries the final state.
        """
        import_id = event.import_id
        state = ProcessingState.RECEIVED
        logger.info(
            f"Received {event.file_type} | import_id={import_id} | key={event.object_key}"
        )
        
        try:
            parser = get_parser(event.file_type)
            
            data = await self._store.get(event.bucket, event.object_key)
            state = ProcessingState.FETCHED
            if self._config.verify_checksum:
                self._verify(event, data)
            
            records = parser(data.decode("utf-8-sig"))
            state = ProcessingState.PARSED
            logger.debug(f"Parsed {len(records)} records | import_id={import_id}")
            
            count = self._persist(event.file_type, records, import_id)
            state = ProcessingState.PERSISTED
        except UnknownFileTypeError:
            logger.warning(f"Skipping unknown file type {event.file_type!r} | import_id={import_id}")
            return self._record(NormalizationResult(
                import_id=import_id, file_type=event.file_type,
                state=ProcessingState.SKIPPED,
            ))
        except PipelineException as e:
            logger.error(
                f"Normalization failed at {state.value} | import_id={import_id} | "
                f"{e.to_log_format()}"
            )
            return self._record(NormalizationResult(
                import_id=import_id, file_type=event.file_type,
                state=ProcessingState.FAILED, error=str(e),
            ))
        except Exception as e:
            logger.error(
                f"Normalization failed at {state.value} | import_id={import_id} | {e}",
                exc_info=True,
            )
            return self._record(NormalizationResult(
                import_id=import_id, file_type=event.file_type,
                state=ProcessingState.FAILED, error=str(e),
            ))
        
        logger.info(f"Persisted {count} records from {event.file_type} | import_id={import_id}")
        
        if event.file_type == FILE_TYPE_TRADES and self._config.announce_persisted:
            await self._announce(import_id, count)
        
        return self._record(NormalizationResult(
            import_id=import_id, file_type=event.file_type,
            state=state, records=count,
        ))
    
    def _verify(self, event: RawImportedEvent, data: bytes) -> None:
        if len(data) != event.size_bytes:
            raise ChecksumMismatchError(
                "Payload size differs from announcement",
                expected=str(event.size_bytes), actual=str(len(data)),
            )
        actual = compute_checksum(data)
        if actual != event.checksum.lower():
            raise ChecksumMismatchError(
                "Payload checksum differs from announcement",
                expected=event.checksum, actual=actual,
            )
    
    def _persist(self, file_type: str, records: List[Any], import_id: str) -> int:
        with transaction_scope(self._session_factory) as session:
            if file_type == FILE_TYPE_TRADES:
                return upsert_trades(session, records, import_id)
            if file_type == FILE_TYPE_EOD_PRICES:
                return insert_eod_prices(session, records, import_id)
        raise UnknownFileTypeError(file_type)
    
    async def _announce(self, import_id: str, count: int) -> None:
        event = TradesPersistedEvent(
            import_id=import_id,
            count=count,
            persisted_at=datetime.now(timezone.utc),
        )
        try:
            await self._bus.publish(TOPIC_TRADES_PERSISTED, event.to_json_bytes())
        except PipelineException as e:
            logger.error(f"Failed to announce persisted trades | import_id={import_id} | {e}")
    
    def _record(self, result: NormalizationResult) -> NormalizationResult:
        self._last_result = result
        if result.state == ProcessingState.PERSISTED:
            self._processed_count += 1
            self._records_persisted += result.records
        elif result.state == ProcessingState.SKIPPED:
            self._skipped_count += 1
        else:
            self._failed_count += 1
        return result
