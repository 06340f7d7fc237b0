"""
Data Ingestion - Batch Publisher.

============================================================
RESPONSIBILITY
============================================================
Packages a serialized batch, stores it in the object store
and announces it on the event bus.

ORDERING:
1. checksum = SHA-256 of the UTF-8 payload
2. put object (text/csv)
3. publish RawImportedEvent on etrm.raw.imported

If the upload fails nothing is announced.

============================================================
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Union
from uuid import uuid4

from adapters.event_bus import EventBus
from adapters.object_store import ObjectStore
from contracts.dtos import EndOfDaySettlementPrice, Trade
from contracts.events import RawImportedEvent
from core.clock import ClockProtocol, SystemClock
from core.constants import (
    CSV_CONTENT_TYPE,
    DEFAULT_BUCKET,
    FILE_TYPE_EOD_PRICES,
    FILE_TYPE_TRADES,
    FILENAME_TIMESTAMP_FORMAT,
    FORMAT_CSV,
    SOURCE_SYSTEM,
    TOPIC_RAW_IMPORTED,
)

from .csv_codec import prices_to_csv, trades_to_csv


logger = logging.getLogger(__name__)


def compute_checksum(payload: Union[str, bytes]) -> str:
    """Lowercase hex SHA-256 of the payload's UTF-8 bytes."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def file_stem(file_type: str) -> str:
    if file_type.endswith("." + FORMAT_CSV):
        return file_type[: -len(FORMAT_CSV) - 1]
    return file_type


def as_utc(timestamp: datetime) -> datetime:
    """Naive timestamps are taken as UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def build_object_key(timestamp: datetime, import_id: str, file_type: str) -> str:
    """imports/{yyyy}/{MM}/{dd}/{import_id}/{stem}-{yyyyMMdd-HHmmss}.csv"""
    return (
        f"imports/{timestamp:%Y}/{timestamp:%m}/{timestamp:%d}/{import_id}/"
        f"{file_stem(file_type)}-{timestamp.strftime(FILENAME_TIMESTAMP_FORMAT)}.{FORMAT_CSV}"
    )


class BatchPublisher:
    """Uploads batches and announces them."""
    
    def __init__(
        self,
        object_store: ObjectStore,
        event_bus: EventBus,
        bucket: str = DEFAULT_BUCKET,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._store = object_store
        self._bus = event_bus
        self._bucket = bucket
        self._clock = clock or SystemClock()
    
    async def import_batch(
        self,
        payload: str,
        file_type: str,
        timestamp: Optional[datetime] = None,
    ) -> RawImportedEvent:
        """
        Store one serialized batch and announce it.
        
        Args:
            payload: CSV text
            file_type: trades.csv or eod-prices.csv
            timestamp: Import time used for the key and announcement,
                converted to UTC (naive means UTC)
            
        Returns:
            The published announcement
            
        Raises:
            ObjectStoreError: Upload failed (nothing published)
            EventBusError: Upload succeeded but the announcement failed
        """
        timestamp = as_utc(timestamp or self._clock.now())
        data = payload.encode("utf-8")
        import_id = str(uuid4())
        object_key = build_object_key(timestamp, import_id, file_type)
        
        await self._store.put(self._bucket, object_key, data, CSV_CONTENT_TYPE)
        
        event = RawImportedEvent(
            import_id=import_id,
            bucket=self._bucket,
            object_key=object_key,
            file_type=file_type,
            format=FORMAT_CSV,
            checksum=compute_checksum(data),
            size_bytes=len(data),
            imported_at=timestamp,
            metadata={
                "source_system": SOURCE_SYSTEM,
                "original_filename": object_key.rsplit("/", 1)[-1],
                "generated_data": "true",
            },
        )
        await self._bus.publish(TOPIC_RAW_IMPORTED, event.to_json_bytes())
        
        logger.info(
            f"Imported {file_type} | import_id={import_id} | "
            f"key={object_key} | bytes={len(data)}"
        )
        return event
    
    async def import_trades(
        self,
        trades: Iterable[Trade],
        timestamp: Optional[datetime] = None,
    ) -> RawImportedEvent:
        return await self.import_batch(trades_to_csv(trades), FILE_TYPE_TRADES, timestamp)
    
    async def import_prices(
        self,
        prices: Iterable[EndOfDaySettlementPrice],
        timestamp: Optional[datetime] = None,
    ) -> RawImportedEvent:
        return await self.import_batch(prices_to_csv(prices), FILE_TYPE_EOD_PRICES, timestamp)
