"""
Tests for the change notification feed
"""
import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from pydantic import SecretStr

from services.realtime import (
    ChangeEvent,
    InMemoryChangeFeed,
    RedisChangeFeed,
    build_feed,
    publish_change,
)
from settings import Settings


def _event(table="messages", event_type="insert", **record):
    return ChangeEvent(table=table, event_type=event_type, record=record)


class TestSubscriptionMatching:

    @pytest.mark.asyncio
    async def test_filter_and_event_type(self):
        feed = InMemoryChangeFeed()
        sub = feed.subscribe("messages", "insert", filter={"recipient_id": "bob"})

        await feed.publish(_event(recipient_id="bob", sender_id="alice"))
        await feed.publish(_event(recipient_id="carol", sender_id="alice"))
        await feed.publish(_event(event_type="update", recipient_id="bob"))
        await feed.publish(_event(table="deals", recipient_id="bob"))

        events = sub.drain()
        assert len(events) == 1
        assert events[0].record["sender_id"] == "alice"

    @pytest.mark.asyncio
    async def test_any_of_and_all_event_types(self):
        feed = InMemoryChangeFeed()
        sub = feed.subscribe("messages", any_of=[{"sender_id": "bob"}, {"recipient_id": "bob"}])

        await feed.publish(_event(sender_id="bob", recipient_id="alice"))
        await feed.publish(_event(event_type="update", sender_id="alice", recipient_id="bob"))
        await feed.publish(_event(sender_id="alice", recipient_id="carol"))

        assert len(sub.drain()) == 2

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            InMemoryChangeFeed().subscribe("messages", "delete")


class TestSubscriptionLifecycle:

    @pytest.mark.asyncio
    async def test_unsubscribe_releases_only_that_handle(self):
        feed = InMemoryChangeFeed()
        first = feed.subscribe("messages", "insert")
        second = feed.subscribe("messages", "insert")

        feed.unsubscribe(first)
        feed.unsubscribe(first)

        assert feed.subscription_count == 1
        await feed.publish(_event(content="hi"))
        assert first.drain() == []
        assert len(second.drain()) == 1

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_exit(self):
        feed = InMemoryChangeFeed()
        with pytest.raises(RuntimeError):
            async with feed.subscribe("deals", "update"):
                assert feed.subscription_count == 1
                raise RuntimeError("view torn down")
        assert feed.subscription_count == 0

    @pytest.mark.asyncio
    async def test_iteration_ends_when_closed(self):
        feed = InMemoryChangeFeed()
        sub = feed.subscribe("messages")
        received = []

        async def consume():
            async for event in sub:
                received.append(event.record["content"])

        task = asyncio.create_task(consume())
        await feed.publish(_event(content="one"))
        await feed.publish(_event(content="two"))
        await asyncio.sleep(0)
        feed.unsubscribe(sub)
        await asyncio.wait_for(task, 1)

        assert received == ["one", "two"]

    @pytest.mark.asyncio
    async def test_unread_queue_is_bounded(self, caplog):
        feed = InMemoryChangeFeed()
        sub = feed.subscribe("messages", max_pending=2)

        for n in range(5):
            await feed.publish(_event(content=str(n)))

        assert [e.record["content"] for e in sub.drain()] == ["3", "4"]
        assert sub.dropped == 3
        assert "event(s) dropped" in caplog.text

    @pytest.mark.asyncio
    async def test_close_on_full_queue_still_ends_iteration(self):
        feed = InMemoryChangeFeed()
        sub = feed.subscribe("messages", max_pending=1)
        await feed.publish(_event(content="stale"))

        feed.unsubscribe(sub)

        assert await asyncio.wait_for(sub.get(), 1) is None

    def test_max_pending_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryChangeFeed().subscribe("messages", max_pending=0)

    @pytest.mark.asyncio
    async def test_close_releases_everything(self):
        feed = InMemoryChangeFeed()
        subs = [feed.subscribe("messages") for _ in range(3)]
        await feed.close()
        assert feed.subscription_count == 0
        assert all(not s.active for s in subs)
        assert await subs[0].get() is None


class TestChangeEvent:

    def test_json_round_trip(self):
        event = _event(id="m1", is_read=True)
        restored = ChangeEvent.from_json(event.to_json().encode("utf-8"))
        assert restored.table == "messages"
        assert restored.event_type == "insert"
        assert restored.record == {"id": "m1", "is_read": True}
        assert restored.timestamp == event.timestamp


class TestPublishChange:

    @pytest.mark.asyncio
    async def test_no_feed(self):
        await publish_change(None, "deals", "insert", {"id": "d1"})

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        feed = MagicMock()
        feed.publish = AsyncMock(side_effect=ConnectionError("redis down"))

        await publish_change(feed, "deals", "insert", {"id": "d1"})

        assert "failed to publish deals insert event" in caplog.text


class _FakePubSub:
    """
    Minimal stand-in for redis.asyncio PubSub

    Each ``listen()`` call plays the next session: an exception is raised,
    a list of messages is yielded (after ``gate`` is set, if given).
    """

    def __init__(self, *sessions, gate=None):
        self._sessions = list(sessions)
        self._gate = gate
        self.psubscribe = AsyncMock()
        self.punsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        session = self._sessions.pop(0) if self._sessions else []
        if isinstance(session, Exception):
            raise session
        if self._gate is not None:
            await self._gate.wait()
        for message in session:
            yield message
        # Слушатель живет до отмены
        await asyncio.Event().wait()


def _redis_client(pubsub):
    client = MagicMock()
    client.pubsub = MagicMock(return_value=pubsub)
    client.aclose = AsyncMock()
    return client


class TestRedisChangeFeed:

    @pytest.mark.asyncio
    async def test_publish_goes_to_table_channel(self):
        client = MagicMock()
        client.publish = AsyncMock(return_value=1)
        feed = RedisChangeFeed(client, channel_prefix="rizq:test")

        await feed.publish(_event(table="deals", id="d1"))

        channel, payload = client.publish.await_args.args
        assert channel == "rizq:test:deals"
        assert json.loads(payload)["record"] == {"id": "d1"}

    @pytest.mark.asyncio
    async def test_listener_dispatches_to_local_subscribers(self):
        event = _event(recipient_id="bob", content="hi")
        pubsub = _FakePubSub([
            {"type": "psubscribe", "data": 1},
            {"type": "pmessage", "channel": "rizq:test:messages", "data": "not json"},
            {"type": "pmessage", "channel": "rizq:test:messages", "data": event.to_json()},
        ])
        client = _redis_client(pubsub)
        feed = RedisChangeFeed(client, channel_prefix="rizq:test")

        sub = feed.subscribe("messages", "insert", filter={"recipient_id": "bob"})
        await feed.start()

        received = await asyncio.wait_for(sub.get(), 1)
        assert received.record["content"] == "hi"
        pubsub.psubscribe.assert_awaited_once_with("rizq:test:*")

        await feed.close()
        assert feed.subscription_count == 0
        pubsub.punsubscribe.assert_awaited_once()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_loss_ends_local_subscriptions_and_resubscribes(self, caplog):
        event = _event(recipient_id="bob", content="after reconnect")
        release = asyncio.Event()
        pubsub = _FakePubSub(
            ConnectionError("redis went away"),
            [{"type": "pmessage", "channel": "rizq:test:messages", "data": event.to_json()}],
            gate=release,
        )
        client = _redis_client(pubsub)
        feed = RedisChangeFeed(client, channel_prefix="rizq:test", reconnect_delay=0.01)

        before = feed.subscribe("messages")
        await feed.start()

        # Потребитель видит конец подписки, а не зависает
        assert await asyncio.wait_for(before.get(), 1) is None
        assert feed.subscription_count == 0
        assert "change feed listener failed: redis went away" in caplog.text

        after = feed.subscribe("messages", "insert")
        release.set()
        received = await asyncio.wait_for(after.get(), 1)
        assert received.record["content"] == "after reconnect"
        assert pubsub.psubscribe.await_count == 2

        await feed.close()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_after_listener_failure_releases_connections(self):
        pubsub = _FakePubSub(ConnectionError("redis went away"))
        pubsub.punsubscribe = AsyncMock(side_effect=ConnectionError("redis went away"))
        client = _redis_client(pubsub)
        feed = RedisChangeFeed(client, channel_prefix="rizq:test", reconnect_delay=0.01)
        sub = feed.subscribe("deals")

        await feed.start()
        assert await asyncio.wait_for(sub.get(), 1) is None

        await feed.close()

        assert pubsub.aclose.await_count >= 1
        client.aclose.assert_awaited_once()


class TestBuildFeed:

    def test_memory_backend(self):
        settings = Settings(jwt_secret=SecretStr("x"), realtime_backend="memory")
        assert isinstance(build_feed(settings), InMemoryChangeFeed)

    def test_redis_backend(self):
        settings = Settings(jwt_secret=SecretStr("x"), realtime_backend="redis")
        with patch("redis.asyncio.Redis.from_url") as from_url:
            feed = build_feed(settings)
        assert isinstance(feed, RedisChangeFeed)
        from_url.assert_called_once_with(settings.redis.url, decode_responses=True)
