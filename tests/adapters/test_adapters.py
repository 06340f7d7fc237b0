"""
Adapter Tests.

============================================================
PURPOSE
============================================================
Tests for the object store and event bus implementations.

TEST CATEGORIES:
- In-memory object store semantics and failure injection
- In-memory bus delivery order and handler isolation
- S3 store against a mocked boto3 client

============================================================
"""

import logging
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from adapters import InMemoryEventBus, InMemoryObjectStore, S3ObjectStore
from core.config import ObjectStoreConfig
from core.exceptions import EventBusError, ObjectStoreError


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "HeadObject",
    )


# ============================================================
# IN-MEMORY OBJECT STORE
# ============================================================

class TestInMemoryObjectStore:
    """Tests for InMemoryObjectStore."""
    
    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = InMemoryObjectStore()
        
        await store.put("bucket", "a/b.csv", b"payload", "text/csv")
        
        assert await store.get("bucket", "a/b.csv") == b"payload"
        assert await store.exists("bucket", "a/b.csv")
        assert store.content_type("bucket", "a/b.csv") == "text/csv"
        assert store.keys("bucket") == ["a/b.csv"]
    
    @pytest.mark.asyncio
    async def test_get_missing_raises(self):
        store = InMemoryObjectStore()
        
        assert not await store.exists("bucket", "missing")
        with pytest.raises(ObjectStoreError):
            await store.get("bucket", "missing")
    
    @pytest.mark.asyncio
    async def test_failure_injection(self):
        store = InMemoryObjectStore(fail_on_put=True)
        
        with pytest.raises(ObjectStoreError) as exc_info:
            await store.put("bucket", "k", b"x", "text/csv")
        
        assert exc_info.value.is_transient
        assert store.keys() == []


# ============================================================
# IN-MEMORY EVENT BUS
# ============================================================

class TestInMemoryEventBus:
    """Tests for InMemoryEventBus."""
    
    @pytest.mark.asyncio
    async def test_delivers_to_topic_subscribers_only(self):
        bus = InMemoryEventBus()
        received = []
        
        async def handler(payload: bytes) -> None:
            received.append(payload)
        
        await bus.subscribe("a", handler)
        await bus.publish("a", b"1")
        await bus.publish("b", b"2")
        
        assert received == [b"1"]
        assert bus.published == [("a", b"1"), ("b", b"2")]
        assert bus.messages("b") == [b"2"]
    
    @pytest.mark.asyncio
    async def test_handler_error_is_logged_not_raised(self, caplog):
        bus = InMemoryEventBus()
        received = []
        
        async def failing(payload: bytes) -> None:
            raise RuntimeError("boom")
        
        async def healthy(payload: bytes) -> None:
            received.append(payload)
        
        await bus.subscribe("a", failing)
        await bus.subscribe("a", healthy)
        
        with caplog.at_level(logging.ERROR):
            await bus.publish("a", b"1")
        
        assert received == [b"1"]
        assert "boom" in caplog.text
    
    @pytest.mark.asyncio
    async def test_publish_from_handler_is_delivered_after_current_message(self):
        bus = InMemoryEventBus()
        order = []
        
        async def first(payload: bytes) -> None:
            order.append(("first", payload))
            if payload == b"1":
                await bus.publish("a", b"2")
            order.append(("first-done", payload))
        
        await bus.subscribe("a", first)
        await bus.publish("a", b"1")
        
        assert order == [
            ("first", b"1"),
            ("first-done", b"1"),
            ("first", b"2"),
            ("first-done", b"2"),
        ]
    
    @pytest.mark.asyncio
    async def test_publish_failure(self):
        bus = InMemoryEventBus(fail_on_publish=True)
        
        with pytest.raises(EventBusError):
            await bus.publish("a", b"1")
        
        assert bus.published == []


# ============================================================
# S3 OBJECT STORE
# ============================================================

class TestS3ObjectStore:
    """Tests for S3ObjectStore with a mocked boto3 client."""
    
    @pytest.mark.asyncio
    async def test_put_creates_missing_bucket_once(self):
        client = MagicMock()
        client.head_bucket.side_effect = _client_error("404", 404)
        store = S3ObjectStore(ObjectStoreConfig(), client=client)
        
        await store.put("etrm-raw", "k1", b"a", "text/csv")
        await store.put("etrm-raw", "k2", b"b", "text/csv")
        
        client.create_bucket.assert_called_once_with(Bucket="etrm-raw")
        assert client.put_object.call_count == 2
        client.put_object.assert_called_with(
            Bucket="etrm-raw", Key="k2", Body=b"b", ContentType="text/csv",
        )
    
    @pytest.mark.asyncio
    async def test_get_reads_body(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"data"))}
        store = S3ObjectStore(ObjectStoreConfig(), client=client)
        
        assert await store.get("etrm-raw", "k") == b"data"
    
    @pytest.mark.asyncio
    async def test_client_errors_are_wrapped(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("NoSuchKey", 404)
        store = S3ObjectStore(ObjectStoreConfig(), client=client)
        
        with pytest.raises(ObjectStoreError) as exc_info:
            await store.get("etrm-raw", "k")
        
        assert exc_info.value.context["key"] == "k"
    
    @pytest.mark.asyncio
    async def test_exists_maps_404_to_false(self):
        client = MagicMock()
        client.head_object.side_effect = _client_error("404", 404)
        store = S3ObjectStore(ObjectStoreConfig(), client=client)
        
        assert await store.exists("etrm-raw", "k") is False
