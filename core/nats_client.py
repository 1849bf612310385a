"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between freight services

This module wraps nats-py (JetStream) behind a small event bus:
- Event: envelope published on the bus
- NATSEventBus: publish / subscribe with durable pull consumers
- get_event_bus: per-process singleton used by service lifespans
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING

import nats
from nats.errors import TimeoutError as NATSTimeoutError

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published on the freight bus"""

    # Shipment Events
    SHIPMENT_CREATED = "shipment.created"
    SHIPMENT_DELIVERED = "shipment.delivered"
    SHIPMENT_CANCELLED = "shipment.cancelled"
    SHIPMENT_DELETED = "shipment.deleted"
    SHIPMENT_SCHEDULE_UPDATED = "shipment.schedule.updated"
    TRACKING_LINK_ISSUED = "shipment.tracking_link.issued"

    # Tracking Events
    POSITION_FIX_RECORDED = "tracking.fix.recorded"


class ServiceSource(Enum):
    """Service sources"""

    SHIPMENT_SERVICE = "shipment_service"
    TRACKING_SERVICE = "tracking_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[EventType, str],
        source: Union[ServiceSource, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source.value if isinstance(source, Enum) else source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


# All freight subjects live in one stream
FREIGHT_STREAM_NAME = "freight-stream"
FREIGHT_STREAM_SUBJECTS = ["shipment.>", "tracking.>"]


class NATSEventBus:
    """
    NATS JetStream event bus.

    Publishes Event envelopes as JSON on subject == event.type and runs
    one pull-consumer task per subscription.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        nats_url: Optional[str] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as client name and consumer prefix)
            config: Optional ConfigManager instance
            nats_url: Explicit server URL (overrides configuration)
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)

        self.nats_url = nats_url or config.settings.infrastructure.resolved_nats_url

        self._nc = None
        self._js = None
        self._subscriptions: Dict[str, bool] = {}  # pattern -> active
        self._subscription_tasks: List[asyncio.Task] = []
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.nats_url}")

    async def connect(self):
        """Connect to NATS and make sure the freight stream exists"""
        try:
            self._nc = await nats.connect(servers=[self.nats_url], name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

        await self.create_stream(FREIGHT_STREAM_NAME, FREIGHT_STREAM_SUBJECTS)

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to JetStream.

        Subject is the event type (e.g. "shipment.delivered").
        Returns False instead of raising when the bus is unavailable.
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(event.type, data)
            logger.info(f"Published event {event.type} [{event.id}] to stream {ack.stream}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: Callable, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a pattern using a JetStream pull consumer.

        Args:
            pattern: Subject pattern (e.g. "shipment.>" or "tracking.fix.recorded")
            handler: Async callback receiving an Event
            durable: Optional durable consumer name
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return None

        consumer_name = durable or f"{self.service_name}-{pattern.split('.')[0]}"
        self._subscriptions[pattern] = True
        task = asyncio.create_task(
            self._jetstream_consumer_loop(pattern, handler, consumer_name)
        )
        self._subscription_tasks.append(task)

        logger.info(f"Subscribed to {pattern} (JetStream consumer {consumer_name})")
        return consumer_name

    async def _jetstream_consumer_loop(self, pattern: str, handler: Callable, consumer_name: str):
        """Pull messages in batches, hand them to the handler, ack each one"""
        try:
            psub = await self._js.pull_subscribe(pattern, durable=consumer_name)
        except Exception as e:
            logger.error(f"Failed to create consumer {consumer_name} for {pattern}: {e}")
            self._subscriptions[pattern] = False
            return

        try:
            while self._subscriptions.get(pattern, False):
                try:
                    messages = await psub.fetch(batch=10, timeout=1)
                except NATSTimeoutError:
                    continue
                except Exception as pull_e:
                    logger.warning(f"Pull error (will retry): {pull_e}")
                    await asyncio.sleep(5)
                    continue

                for msg in messages:
                    try:
                        event = Event.from_dict(json.loads(msg.data.decode()))
                        await handler(event)
                    except Exception as msg_e:
                        logger.error(f"Error processing message on {msg.subject}: {msg_e}")
                    finally:
                        await msg.ack()

        except asyncio.CancelledError:
            raise
        finally:
            self._subscriptions[pattern] = False
            logger.info(f"JetStream consumer stopped: {consumer_name}")

    async def unsubscribe(self, pattern: str) -> bool:
        """Stop the consumer loop for a pattern"""
        if self._subscriptions.get(pattern):
            self._subscriptions[pattern] = False
            logger.info(f"Unsubscribed from {pattern}")
            return True
        return False

    async def create_stream(self, name: str, subjects: List[str]) -> bool:
        """Create a JetStream stream (idempotent)"""
        if not self._is_connected or not self._js:
            return False

        try:
            await self._js.add_stream(name=name, subjects=subjects)
            return True
        except Exception as e:
            logger.debug(f"Stream creation note: {e}")
            return False

    async def close(self):
        """Drain subscriptions and close the connection"""
        for pattern in list(self._subscriptions.keys()):
            self._subscriptions[pattern] = False

        for task in self._subscription_tasks:
            if not task.done():
                task.cancel()
        if self._subscription_tasks:
            await asyncio.gather(*self._subscription_tasks, return_exceptions=True)
        self._subscription_tasks.clear()

        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        config: Optional ConfigManager instance

    Returns:
        NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(service_name=service_name, config=config)
        await _event_bus.connect()

    return _event_bus


# Convenience function for creating events
def create_event(
    event_type: EventType,
    source: ServiceSource,
    data: Dict[str, Any],
    subject: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Event:
    """Create an Event instance"""
    return Event(
        event_type=event_type,
        source=source,
        data=data,
        subject=subject,
        metadata=metadata,
    )
