"""
Contracts - Pipeline Events.

Pydantic models for the JSON messages carried on the event
bus. Field names are snake_case on the wire.
"""

from datetime import datetime
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class PipelineEvent(BaseModel):
    """Base for every bus message."""

    model_config = ConfigDict(extra="ignore")

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_json_bytes(cls, payload: bytes):
        return cls.model_validate_json(payload)


class RawImportedEvent(PipelineEvent):
    """Announcement that a raw payload is available in the object store."""

    event_type: str = "ETRM.Raw.Imported"
    import_id: str
    bucket: str
    object_key: str
    file_type: str
    format: str
    checksum: str
    size_bytes: int
    imported_at: datetime
    metadata: Dict[str, str] = Field(default_factory=dict)


class TradesPersistedEvent(PipelineEvent):
    """Normalized trades of one import have been written."""

    event_type: str = "ETRM.Normalized.Trades.Persisted"
    import_id: str
    count: int
    persisted_at: datetime


class PositionsUpdatedEvent(PipelineEvent):
    """An aggregation run has upserted positions."""

    event_type: str = "ETRM.Positions.Updated"
    count: int
    updated_at: datetime
