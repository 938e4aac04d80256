"""Event bus implementation with Redis pub/sub."""

import logging
from typing import Optional
import redis.asyncio as redis

from shared.redis_client import RedisClient
from shared.events.schemas import BaseEvent

logger = logging.getLogger(__name__)

# Event topics
LEASE_EVENTS_TOPIC = "lease:events"
PAYMENT_EVENTS_TOPIC = "payment:events"


class EventPublisher:
    """Publishes events to Redis pub/sub."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def publish(
        self,
        event: BaseEvent,
        topic: str = LEASE_EVENTS_TOPIC,
    ) -> bool:
        """
        Publish an event to a topic.

        Args:
            event: Event to publish
            topic: Redis topic/channel name

        Returns:
            True if at least one subscriber received the event
        """
        event_data = event.model_dump_json()
        num_subscribers = await self.redis.publish(topic, event_data)

        logger.info(
            f"Published {event.event_type} to {topic}. "
            f"Subscribers: {num_subscribers}"
        )

        return num_subscribers > 0


class EventBusManager:
    """Central event bus manager.

    Publishing is best effort: the audit row in ``lease_events`` is the
    durable record, the pub/sub fan-out only informs other services.
    """

    def __init__(self):
        self.publisher: Optional[EventPublisher] = None

    @property
    def initialized(self) -> bool:
        return self.publisher is not None

    async def initialize(self):
        """Initialize event bus components."""
        try:
            redis_client = await RedisClient.get_client()
            self.publisher = EventPublisher(redis_client)
            logger.info("Event bus initialized")

        except Exception as e:
            logger.error(f"Failed to initialize event bus: {e}")
            raise

    async def publish_event(
        self,
        event: BaseEvent,
        topic: str = LEASE_EVENTS_TOPIC,
    ) -> bool:
        """Publish an event; failures are logged and reported as False."""
        if self.publisher is None:
            logger.debug(f"Event bus not initialized, skipping {event.event_type}")
            return False

        try:
            return await self.publisher.publish(event, topic)
        except Exception as e:
            logger.warning(
                f"Failed to publish {event.event_type}: {e}",
                extra={"lease_id": str(event.lease_id)},
            )
            return False

    def reset(self):
        """Drop the publisher (used on shutdown)."""
        self.publisher = None


# Global event bus instance
event_bus = EventBusManager()
