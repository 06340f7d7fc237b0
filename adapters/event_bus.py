"""
Adapters - Event Bus.

============================================================
PURPOSE
============================================================
Publish/subscribe transport for pipeline announcements.

CONTRACT:
- publish(topic, payload)        payload is UTF-8 JSON bytes
- subscribe(topic, handler)      handler is awaited per message

Messages for one subscription are handled one at a time.
A handler exception is logged and the message is dropped;
there is no redelivery.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Awaitable, Callable, Deque, Dict, List, Tuple

import nats
from nats.errors import Error as NatsError

from core.config import EventBusConfig
from core.exceptions import EventBusError


logger = logging.getLogger(__name__)


EventHandler = Callable[[bytes], Awaitable[None]]


# ============================================================
# CONTRACT
# ============================================================

class EventBus(ABC):
    """Abstract publish/subscribe transport."""
    
    @abstractmethod
    async def publish(self, topic: str, payload: bytes) -> None:
        """
        Publish a message.
        
        Raises:
            EventBusError: If the transport is unreachable
        """
        pass
    
    @abstractmethod
    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        pass
    
    async def close(self) -> None:
        return None


async def _dispatch(topic: str, handler: EventHandler, payload: bytes) -> None:
    try:
        await handler(payload)
    except Exception as e:
        logger.error(f"Error processing message from subject {topic}: {e}", exc_info=True)


# ============================================================
# IN-MEMORY BUS
# ============================================================

class InMemoryEventBus(EventBus):
    """
    In-process bus for tests and single-process runs.
    
    publish() delivers to every subscriber of the topic before
    returning. Handlers never run concurrently: a message published
    while another is being delivered (including from inside a
    handler) is queued and delivered by the active publisher.
    """
    
    def __init__(self, fail_on_publish: bool = False) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._pending: Deque[Tuple[str, EventHandler, bytes]] = deque()
        self._dispatching = False
        self.published: List[Tuple[str, bytes]] = []
        self.fail_on_publish = fail_on_publish
    
    async def publish(self, topic: str, payload: bytes) -> None:
        if self.fail_on_publish:
            raise EventBusError("Event bus unavailable", topic=topic)
        self.published.append((topic, payload))
        logger.debug(f"Published message to subject {topic} ({len(payload)} bytes)")
        
        for handler in list(self._handlers.get(topic, [])):
            self._pending.append((topic, handler, payload))
        if self._dispatching:
            return
        
        self._dispatching = True
        try:
            while self._pending:
                await _dispatch(*self._pending.popleft())
        finally:
            self._dispatching = False
    
    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        logger.info(f"Subscribing to subject {topic}")
        self._handlers[topic].append(handler)
    
    def messages(self, topic: str) -> List[bytes]:
        return [payload for t, payload in self.published if t == topic]


# ============================================================
# NATS BUS
# ============================================================

class NatsEventBus(EventBus):
    """
    NATS core publish/subscribe.
    
    The connection is opened lazily on first use.
    """
    
    def __init__(self, config: EventBusConfig) -> None:
        self._config = config
        self._connection = None
        self._connect_lock = asyncio.Lock()
    
    async def _get_connection(self):
        async with self._connect_lock:
            if self._connection is None or self._connection.is_closed:
                try:
                    self._connection = await nats.connect(self._config.url)
                except (NatsError, OSError) as e:
                    raise EventBusError(
                        f"Cannot connect to {self._config.url}", cause=e,
                    ) from e
                logger.info(f"Connected to NATS at {self._config.url}")
            return self._connection
    
    async def publish(self, topic: str, payload: bytes) -> None:
        connection = await self._get_connection()
        try:
            await connection.publish(topic, payload)
            await connection.flush()
        except (NatsError, OSError) as e:
            logger.error(f"Failed to publish message to subject {topic}: {e}")
            raise EventBusError("Publish failed", topic=topic, cause=e) from e
        logger.info(f"Published message to subject {topic} ({len(payload)} bytes)")
    
    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        connection = await self._get_connection()
        
        async def on_message(msg) -> None:
            if msg.data:
                await _dispatch(topic, handler, msg.data)
        
        try:
            await connection.subscribe(topic, cb=on_message)
        except (NatsError, OSError) as e:
            logger.error(f"Failed to subscribe to subject {topic}: {e}")
            raise EventBusError("Subscribe failed", topic=topic, cause=e) from e
        logger.info(f"Subscribed to subject {topic}")
    
    async def close(self) -> None:
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.drain()
        self._connection = None
