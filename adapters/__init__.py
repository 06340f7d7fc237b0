"""
Adapters Package.

External collaborators behind fixed contracts:
- object_store: put/get/exists by bucket and key
- event_bus: publish/subscribe by subject

Each contract ships an in-memory implementation (tests, local
runs) and a network implementation (S3, NATS).
"""

from .object_store import ObjectStore, InMemoryObjectStore, S3ObjectStore
from .event_bus import EventBus, EventHandler, InMemoryEventBus, NatsEventBus

__all__ = [
    "ObjectStore",
    "InMemoryObjectStore",
    "S3ObjectStore",
    "EventBus",
    "EventHandler",
    "InMemoryEventBus",
    "NatsEventBus",
]
