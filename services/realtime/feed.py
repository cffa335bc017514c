"""
Row-change notification feed

Services publish ``ChangeEvent``s after a successful commit; views subscribe
with a table, an event type and an optional filter and receive matching
events through a ``Subscription`` handle.

Every ``subscribe`` must be paired with exactly one ``unsubscribe`` of the
same handle. The handle is an async context manager, so the usual pattern is:

    async with feed.subscribe("messages", "insert", filter={"recipient_id": user_id}) as sub:
        async for event in sub:
            ...
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
EVENT_TYPES = (INSERT, UPDATE)

# Сколько событий держит подписка, которую не читают; старые вытесняются
MAX_PENDING_EVENTS = 1000

_CLOSED = object()


@dataclass
class ChangeEvent:
    """Single row change"""
    table: str
    event_type: str
    record: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps(
            {
                "table": self.table,
                "event_type": self.event_type,
                "record": self.record,
                "timestamp": self.timestamp.isoformat(),
            },
            default=str,
        )

    @classmethod
    def from_json(cls, data) -> "ChangeEvent":
        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8")
        payload = json.loads(data)
        return cls(
            table=payload["table"],
            event_type=payload["event_type"],
            record=payload.get("record") or {},
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


class Subscription:
    """
    Handle returned by ``ChangeFeed.subscribe``

    Matching rules:
        - ``table`` must equal the event table
        - ``event_type`` None matches insert and update
        - ``filter``: every column/value pair must equal the record value
        - ``any_of``: at least one of the mappings must fully match (OR of ANDs)

    At most ``max_pending`` events are queued; when a slow reader lets the
    queue fill up, the oldest event is dropped. Consumers re-read state on
    every event, so only the latest events matter.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        event_type: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        any_of: Optional[Sequence[Mapping[str, Any]]] = None,
        max_pending: int = MAX_PENDING_EVENTS,
    ):
        if event_type is not None and event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        if max_pending < 1:
            raise ValueError("max_pending must be positive")
        self.id = uuid.uuid4().hex
        self.feed = feed
        self.table = table
        self.event_type = event_type
        self.filter = dict(filter or {})
        self.any_of = [dict(f) for f in (any_of or [])]
        self.active = True
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    @staticmethod
    def _match_all(record: Mapping[str, Any], conditions: Mapping[str, Any]) -> bool:
        return all(record.get(column) == value for column, value in conditions.items())

    def matches(self, event: ChangeEvent) -> bool:
        if not self.active or event.table != self.table:
            return False
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        if not self._match_all(event.record, self.filter):
            return False
        if self.any_of and not any(self._match_all(event.record, f) for f in self.any_of):
            return False
        return True

    def _put(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning("%s is not read, %s event(s) dropped", self, self.dropped)
        self._queue.put_nowait(item)

    def deliver(self, event: ChangeEvent) -> None:
        self._put(event)

    def close(self) -> None:
        if self.active:
            self.active = False
            # Будим ожидающего потребителя
            self._put(_CLOSED)

    async def get(self) -> Optional[ChangeEvent]:
        """Next matching event, or None once the subscription is closed"""
        if not self.active and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> List[ChangeEvent]:
        """Pop every event already queued without waiting"""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                # Оставляем маркер закрытия для следующего get()
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.feed.unsubscribe(self)

    def __repr__(self):
        return f"<Subscription(id={self.id}, table={self.table}, event_type={self.event_type}, active={self.active})>"


class ChangeFeed:
    """In-process dispatch shared by every backend"""

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: str,
        event_type: Optional[str] = None,
        filter: Optional[Mapping[str, Any]] = None,
        any_of: Optional[Sequence[Mapping[str, Any]]] = None,
        max_pending: int = MAX_PENDING_EVENTS,
    ) -> Subscription:
        subscription = Subscription(self, table, event_type, filter=filter, any_of=any_of, max_pending=max_pending)
        self._subscriptions[subscription.id] = subscription
        logger.debug("subscribed %s", subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release exactly this handle; releasing twice is a no-op"""
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.debug("unsubscribed %s", subscription)
        subscription.close()

    def dispatch(self, event: ChangeEvent) -> int:
        """Deliver an event to local subscribers, returns the number of receivers"""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        return delivered

    async def publish(self, event: ChangeEvent) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        """Start background machinery (no-op for in-process feed)"""

    async def close(self) -> None:
        """Close every subscription and stop background machinery"""
        for subscription in list(self._subscriptions.values()):
            self.unsubscribe(subscription)


class InMemoryChangeFeed(ChangeFeed):
    """Feed for a single process: publish dispatches directly"""

    async def publish(self, event: ChangeEvent) -> None:
        self.dispatch(event)


class RedisChangeFeed(ChangeFeed):
    """
    Feed shared between processes through Redis pub/sub

    Events are published to ``{prefix}:{table}``; one pattern subscription
    per process reads them back and dispatches to local subscribers.

    If the pub/sub connection fails, every local subscription is closed (so
    consumers' ``async for`` loops end and clients reconnect) and the
    listener resubscribes with exponential backoff.
    """

    def __init__(
        self,
        client,
        channel_prefix: str = "rizq:changes",
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ):
        super().__init__()
        self._client = client
        self._prefix = channel_prefix
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    def channel(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    @property
    def pattern(self) -> str:
        return f"{self._prefix}:*"

    async def publish(self, event: ChangeEvent) -> None:
        await self._client.publish(self.channel(event.table), event.to_json())

    async def _connect(self) -> None:
        self._pubsub = self._client.pubsub()
        await self._pubsub.psubscribe(self.pattern)

    async def _disconnect(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except Exception as e:
            logger.debug("closing broken pub/sub connection failed: %s", e)

    async def start(self) -> None:
        if self._listener is not None:
            return
        await self._connect()
        self._listener = asyncio.create_task(self._listen())

    def _handle(self, message) -> None:
        if message.get("type") != "pmessage":
            return
        try:
            event = ChangeEvent.from_json(message["data"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("dropping malformed change event: %s", e)
            return
        self.dispatch(event)

    async def _listen(self) -> None:
        delay = self._reconnect_delay
        while True:
            try:
                if self._pubsub is None:
                    await self._connect()
                    logger.info("change feed resubscribed to %s", self.pattern)
                async for message in self._pubsub.listen():
                    delay = self._reconnect_delay
                    self._handle(message)
                raise ConnectionError("pub/sub stream ended")
            except Exception as e:
                logger.error(
                    "change feed listener failed: %s; closing %s local subscription(s), retrying in %.1fs",
                    e, self.subscription_count, delay,
                )
                await super().close()
                await self._disconnect()
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_reconnect_delay)

    async def close(self) -> None:
        await super().close()
        try:
            if self._listener is not None:
                self._listener.cancel()
                try:
                    await self._listener
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning("change feed listener stopped with error: %s", e)
                self._listener = None
        finally:
            try:
                if self._pubsub is not None:
                    try:
                        await self._pubsub.punsubscribe()
                    except Exception as e:
                        logger.warning("punsubscribe from %s failed: %s", self.pattern, e)
                    await self._disconnect()
            finally:
                await self._client.aclose()


def build_feed(settings) -> ChangeFeed:
    """Create the feed configured by ``Settings.realtime_backend``"""
    if settings.uses_redis:
        from redis.asyncio import Redis

        client = Redis.from_url(settings.redis.url, decode_responses=True)
        return RedisChangeFeed(client, channel_prefix=settings.redis.channel_prefix)
    return InMemoryChangeFeed()


async def publish_change(feed: Optional[ChangeFeed], table: str, event_type: str, record: Dict[str, Any]) -> None:
    """
    Publish a change after a successful commit

    The write is already durable, so a feed failure is logged and not raised.
    """
    if feed is None:
        return
    try:
        await feed.publish(ChangeEvent(table=table, event_type=event_type, record=record))
    except Exception as e:
        logger.warning("failed to publish %s %s event: %s", table, event_type, e)
