"""
Order event emission.

Events are published strictly after the order write commits, on background
tasks, so a slow or failing subscriber never delays the gateway reply.
Delivery is best-effort: a failed publish is logged and counted, not retried.
"""
import asyncio
import json
from enum import Enum
from typing import Optional, Protocol, Set

import redis.asyncio as aioredis
import structlog

from payment_notifications.monitoring.metrics import metrics

from .domain import OrderSnapshot

logger = structlog.get_logger(__name__)


class EventKind(str, Enum):
    ORDER_PAID = "order.paid"
    ORDER_REFUNDED = "order.refunded"


class EventSink(Protocol):
    """Downstream destination for order events."""

    async def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        ...


class LoggingEventSink:
    """
    Default sink that just logs events.

    Replace with a message queue sink in deployments with subscribers.
    """

    async def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        logger.info(
            "order_event_published_default",
            event_type=kind.value,
            order_no=snapshot.no,
        )


class RedisStreamEventSink:
    """Appends order events to a capped Redis stream."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        stream_name: str = "order_events",
        maxlen: int = 100_000,
    ):
        """
        Initialize Redis stream sink.

        Args:
            redis_client: Redis client
            stream_name: Stream key events are appended to
            maxlen: Approximate maximum stream length
        """
        self.redis_client = redis_client
        self.stream_name = stream_name
        self.maxlen = maxlen

    async def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        fields = {
            "event_type": kind.value,
            "order_no": snapshot.no,
            "payload": json.dumps(snapshot.event_payload()),
        }
        message_id = await self.redis_client.xadd(
            self.stream_name, fields, maxlen=self.maxlen, approximate=True
        )
        logger.info(
            "order_event_published",
            event_type=kind.value,
            order_no=snapshot.no,
            stream=self.stream_name,
            message_id=message_id,
        )

    async def close(self) -> None:
        """Close Redis connection."""
        await self.redis_client.close()


class EventDispatcher:
    """
    Fire-and-forget wrapper around an event sink.

    ``publish`` returns immediately; the sink call runs on a task that the
    dispatcher keeps a reference to until it finishes.
    """

    def __init__(self, sink: Optional[EventSink] = None):
        """
        Initialize event dispatcher.

        Args:
            sink: Event sink (defaults to LoggingEventSink)
        """
        self.sink = sink or LoggingEventSink()
        self._pending: Set[asyncio.Task] = set()

    def publish(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        """Schedule an event for delivery without waiting for it."""
        task = asyncio.get_running_loop().create_task(self._deliver(kind, snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, kind: EventKind, snapshot: OrderSnapshot) -> None:
        try:
            await self.sink.publish(kind, snapshot)
            metrics.record_event_published(kind.value, "published")
        except Exception as e:
            metrics.record_event_published(kind.value, "failed")
            logger.error(
                "order_event_publish_failed",
                event_type=kind.value,
                order_no=snapshot.no,
                error=str(e),
            )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all scheduled events to be delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
