"""
Adapters - Object Store.

============================================================
PURPOSE
============================================================
Raw payload storage addressed by (bucket, key).

CONTRACT:
- put(bucket, key, data, content_type)
- get(bucket, key) -> bytes
- exists(bucket, key) -> bool

Failures surface as ObjectStoreError; nothing is retried here.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from core.config import ObjectStoreConfig
from core.exceptions import ObjectStoreError


logger = logging.getLogger(__name__)


# ============================================================
# CONTRACT
# ============================================================

class ObjectStore(ABC):
    """Abstract object store."""
    
    @abstractmethod
    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
    ) -> None:
        """Store data under key, replacing any existing object."""
        pass
    
    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes:
        """
        Fetch an object.
        
        Raises:
            ObjectStoreError: If the object is missing or unreachable
        """
        pass
    
    @abstractmethod
    async def exists(self, bucket: str, key: str) -> bool:
        pass
    
    async def close(self) -> None:
        """Release client resources."""
        return None


# ============================================================
# IN-MEMORY STORE
# ============================================================

@dataclass
class StoredObject:
    data: bytes
    content_type: str


class InMemoryObjectStore(ObjectStore):
    """
    Dictionary-backed store for tests and local runs.
    
    Supports failure injection on put/get.
    """
    
    def __init__(self, fail_on_put: bool = False, fail_on_get: bool = False) -> None:
        self._objects: Dict[Tuple[str, str], StoredObject] = {}
        self.fail_on_put = fail_on_put
        self.fail_on_get = fail_on_get
        self.put_count = 0
        self.get_count = 0
    
    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        if self.fail_on_put:
            raise ObjectStoreError("Object store unavailable", bucket=bucket, key=key)
        self._objects[(bucket, key)] = StoredObject(bytes(data), content_type)
        self.put_count += 1
        logger.debug(f"Stored object {bucket}/{key} ({len(data)} bytes)")
    
    async def get(self, bucket: str, key: str) -> bytes:
        if self.fail_on_get:
            raise ObjectStoreError("Object store unavailable", bucket=bucket, key=key)
        self.get_count += 1
        stored = self._objects.get((bucket, key))
        if stored is None:
            raise ObjectStoreError("Object not found", bucket=bucket, key=key)
        return stored.data
    
    async def exists(self, bucket: str, key: str) -> bool:
        return (bucket, key) in self._objects
    
    def content_type(self, bucket: str, key: str) -> Optional[str]:
        stored = self._objects.get((bucket, key))
        return stored.content_type if stored else None
    
    def keys(self, bucket: Optional[str] = None) -> List[str]:
        return [k for b, k in self._objects if bucket is None or b == bucket]
    
    def overwrite(self, bucket: str, key: str, data: bytes) -> None:
        """Replace object bytes in place (tampering scenarios in tests)."""
        stored = self._objects[(bucket, key)]
        self._objects[(bucket, key)] = StoredObject(data, stored.content_type)


# ============================================================
# S3 STORE
# ============================================================

class S3ObjectStore(ObjectStore):
    """
    S3-compatible store (AWS S3, MinIO).
    
    boto3 is blocking, so every call runs in a worker thread.
    Buckets are created on first write.
    """
    
    def __init__(self, config: ObjectStoreConfig, client=None) -> None:
        self._config = config
        self._client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint or None,
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            config=BotoConfig(
                s3={"addressing_style": "path" if config.force_path_style else "auto"},
            ),
        )
        self._known_buckets: Set[str] = set()
    
    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        try:
            self._client.head_bucket(Bucket=bucket)
        except ClientError:
            self._client.create_bucket(Bucket=bucket)
            logger.info(f"Created bucket {bucket}")
        self._known_buckets.add(bucket)
    
    def _put_sync(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket(bucket)
        self._client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
    
    def _get_sync(self, bucket: str, key: str) -> bytes:
        response = self._client.get_object(Bucket=bucket, Key=key)
        return response["Body"].read()
    
    def _exists_sync(self, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if status == 404:
                return False
            raise
    
    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._put_sync, bucket, key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload object {key} to bucket {bucket}: {e}")
            raise ObjectStoreError("Upload failed", bucket=bucket, key=key, cause=e) from e
        logger.info(f"Uploaded object {key} to bucket {bucket}")
    
    async def get(self, bucket: str, key: str) -> bytes:
        try:
            data = await asyncio.to_thread(self._get_sync, bucket, key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to download object {key} from bucket {bucket}: {e}")
            raise ObjectStoreError("Download failed", bucket=bucket, key=key, cause=e) from e
        logger.info(f"Downloaded object {key} from bucket {bucket}")
        return data
    
    async def exists(self, bucket: str, key: str) -> bool:
        try:
            return await asyncio.to_thread(self._exists_sync, bucket, key)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("Existence check failed", bucket=bucket, key=key, cause=e) from e
