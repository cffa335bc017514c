"""
Tests for ChatService
"""
import pytest
import uuid
from datetime import datetime, timedelta, timezone
from sqlalchemy import select

from core.exceptions import ValidationError, NotFoundError, ForbiddenError
from db.models import Message
from services.chat.service import ChatService


BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _insert(session, sender_id, recipient_id, content, minutes, is_read=False):
    """Insert a message with an explicit timestamp"""
    message = Message(
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        is_read=is_read,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    session.add(message)
    await session.commit()
    return message


class TestSendMessage:
    """Test send_message method"""

    @pytest.mark.asyncio
    async def test_send_message(self, market):
        service = ChatService(market, "alice")

        message = await service.send_message("bob", "  hi  ")

        assert uuid.UUID(message.id).version == 4
        assert message.content == "hi"
        assert message.sender_id == "alice"
        assert message.recipient_id == "bob"
        assert message.is_read is False
        assert message.read_at is None
        assert message.created_at.tzinfo is not None

        result = await market.execute(select(Message).where(Message.uid == message.id))
        stored = result.scalar_one()
        assert stored.content == "hi"
        assert stored.is_read is False

    @pytest.mark.asyncio
    async def test_blank_content(self, market):
        service = ChatService(market, "alice")
        for content in ("", "   ", "\n\t"):
            with pytest.raises(ValidationError):
                await service.send_message("bob", content)

        result = await market.execute(select(Message))
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_message_to_self(self, market):
        with pytest.raises(ValidationError):
            await ChatService(market, "alice").send_message("alice", "note to self")

    @pytest.mark.asyncio
    async def test_publishes_insert_event(self, market, feed):
        subscription = feed.subscribe("messages", "insert", filter={"recipient_id": "bob"})

        message = await ChatService(market, "alice", feed=feed).send_message("bob", "hello")

        events = subscription.drain()
        assert len(events) == 1
        assert events[0].record["id"] == message.id
        assert events[0].record["content"] == "hello"
        feed.unsubscribe(subscription)

    @pytest.mark.asyncio
    async def test_feed_failure_does_not_fail_send(self, market):
        class BrokenFeed:
            async def publish(self, event):
                raise ConnectionError("feed down")

        message = await ChatService(market, "alice", feed=BrokenFeed()).send_message("bob", "hello")
        assert message.content == "hello"


class TestThread:
    """Test get_thread, mark_read and mark_all_read"""

    @pytest.mark.asyncio
    async def test_fetch_marks_incoming_read(self, market):
        """A sends 'hi' twice, B fetches: both read, unread count drops to 0"""
        alice = ChatService(market, "alice")
        await alice.send_message("bob", "hi")
        await alice.send_message("bob", "hi")

        bob = ChatService(market, "bob")
        assert await bob.unread_count() == 2

        thread = await bob.get_thread("alice")

        assert len(thread["messages"]) == 2
        assert thread["marked_read"] == 2
        assert all(m.is_read for m in thread["messages"])
        assert all(m.read_at is not None for m in thread["messages"])
        assert await bob.unread_count() == 0

        result = await market.execute(select(Message).execution_options(populate_existing=True))
        assert all(m.is_read for m in result.scalars().all())

    @pytest.mark.asyncio
    async def test_thread_order_and_direction(self, market):
        await _insert(market, "alice", "bob", "first", 1)
        await _insert(market, "bob", "alice", "second", 2)
        await _insert(market, "alice", "bob", "third", 3)
        await _insert(market, "alice", "carol", "other thread", 4)

        thread = await ChatService(market, "alice").get_thread("bob")

        assert [m.content for m in thread["messages"]] == ["first", "second", "third"]
        # Only the message addressed to alice is marked read
        assert thread["marked_read"] == 1
        assert [m.is_read for m in thread["messages"]] == [False, True, False]

    @pytest.mark.asyncio
    async def test_fetch_publishes_update_events(self, market, feed):
        await _insert(market, "alice", "bob", "one", 1)
        await _insert(market, "alice", "bob", "two", 2)
        subscription = feed.subscribe("messages", "update")

        await ChatService(market, "bob", feed=feed).get_thread("alice")
        await ChatService(market, "bob", feed=feed).get_thread("alice")

        events = subscription.drain()
        assert len(events) == 2
        assert all(e.record["is_read"] is True for e in events)
        feed.unsubscribe(subscription)

    @pytest.mark.asyncio
    async def test_mark_read_idempotent(self, market):
        message = await ChatService(market, "alice").send_message("bob", "ping")
        bob = ChatService(market, "bob")

        assert await bob.mark_read(message.id) == 1
        assert await bob.mark_read(message.id) == 0
        assert await bob.unread_count() == 0

    @pytest.mark.asyncio
    async def test_mark_read_only_recipient(self, market):
        message = await ChatService(market, "alice").send_message("bob", "ping")

        with pytest.raises(ForbiddenError):
            await ChatService(market, "alice").mark_read(message.id)
        with pytest.raises(ForbiddenError):
            await ChatService(market, "carol").mark_read(message.id)

    @pytest.mark.asyncio
    async def test_mark_read_unknown(self, market):
        with pytest.raises(NotFoundError):
            await ChatService(market, "bob").mark_read("no-such-message")

    @pytest.mark.asyncio
    async def test_mark_all_read(self, market):
        await _insert(market, "alice", "bob", "one", 1)
        await _insert(market, "alice", "bob", "two", 2)
        await _insert(market, "alice", "bob", "old", 0, is_read=True)
        await _insert(market, "bob", "alice", "reply", 3)
        await _insert(market, "carol", "bob", "unrelated", 4)

        bob = ChatService(market, "bob")
        assert await bob.mark_all_read("alice") == 2
        assert await bob.mark_all_read("alice") == 0

        # carol's message and bob's own reply stay unread
        assert await bob.unread_count() == 1
        assert await ChatService(market, "alice").unread_count() == 1

    @pytest.mark.asyncio
    async def test_mark_all_read_publishes_only_changed_rows(self, market, session_factory, feed, monkeypatch):
        first = await _insert(market, "alice", "bob", "one", 1)
        second = await _insert(market, "alice", "bob", "two", 2)
        bob = ChatService(market, "bob", feed=feed)
        unread_ids_from = bob._unread_ids_from

        async def read_concurrently(sender_id):
            ids = await unread_ids_from(sender_id)
            # Параллельный запрос успевает пометить первое сообщение
            async with session_factory() as other:
                assert await ChatService(other, "bob").mark_read(first.uid) == 1
            return ids

        monkeypatch.setattr(bob, "_unread_ids_from", read_concurrently)
        subscription = feed.subscribe("messages", "update")

        assert await bob.mark_all_read("alice") == 1

        events = subscription.drain()
        assert [e.record["id"] for e in events] == [second.uid]
        feed.unsubscribe(subscription)


class TestListConversations:
    """Test list_conversations method"""

    @pytest.mark.asyncio
    async def test_no_messages(self, market):
        assert await ChatService(market, "carol").list_conversations() == []

    @pytest.mark.asyncio
    async def test_one_entry_per_counterparty(self, market):
        await _insert(market, "alice", "bob", "hi bob", 1)
        await _insert(market, "bob", "alice", "hi alice", 2)
        await _insert(market, "bob", "alice", "you there?", 3)
        await _insert(market, "carol", "alice", "hello", 5)
        await _insert(market, "alice", "carol", "hey carol", 10)

        conversations = await ChatService(market, "alice").list_conversations()

        assert [c.counterparty_id for c in conversations] == ["carol", "bob"]

        carol, bob = conversations
        assert carol.counterparty.full_name == "Carol White"
        assert carol.last_message.content == "hey carol"
        assert carol.last_message.sender_id == "alice"
        assert carol.unread_count == 1

        assert bob.counterparty.username == "bob"
        assert bob.last_message.content == "you there?"
        assert bob.last_message_at == BASE_TIME + timedelta(minutes=3)
        assert bob.unread_count == 2

    @pytest.mark.asyncio
    async def test_sorted_by_last_message_desc(self, market):
        await _insert(market, "bob", "alice", "old", 1)
        await _insert(market, "carol", "alice", "newer", 2)
        await _insert(market, "ghost", "alice", "newest", 3)

        conversations = await ChatService(market, "alice").list_conversations()

        assert [c.counterparty_id for c in conversations] == ["ghost", "carol", "bob"]
        times = [c.last_message_at for c in conversations]
        assert times == sorted(times, reverse=True)

    @pytest.mark.asyncio
    async def test_missing_profile_placeholder(self, market):
        await _insert(market, "ghost", "alice", "boo", 1)

        conversations = await ChatService(market, "alice").list_conversations()

        assert conversations[0].counterparty.full_name == "Unknown User"
        assert conversations[0].counterparty.available is False
        assert conversations[0].unread_count == 1

    @pytest.mark.asyncio
    async def test_profile_failure_degrades(self, market, monkeypatch):
        await _insert(market, "bob", "alice", "hi", 1)
        service = ChatService(market, "alice")

        async def broken(ids):
            raise RuntimeError("profiles unavailable")

        monkeypatch.setattr(service.profiles, "map_by_ids", broken)

        conversations = await service.list_conversations()

        assert len(conversations) == 1
        assert conversations[0].counterparty.full_name == "Unknown User"
        assert conversations[0].last_message.content == "hi"

    @pytest.mark.asyncio
    async def test_missing_last_message_sorts_last(self, market, monkeypatch):
        await _insert(market, "bob", "alice", "hi", 1)
        await _insert(market, "carol", "alice", "hello", 2)
        service = ChatService(market, "alice")

        async def partial(counterparty):
            found = await ChatService._last_messages(service, counterparty)
            found.pop("carol")
            return found

        monkeypatch.setattr(service, "_last_messages", partial)

        conversations = await service.list_conversations()

        assert [c.counterparty_id for c in conversations] == ["bob", "carol"]
        assert conversations[1].last_message is None
        assert conversations[1].last_message_at is None

    @pytest.mark.asyncio
    async def test_last_message_failure_degrades(self, market, monkeypatch):
        await _insert(market, "bob", "alice", "hi", 1)
        service = ChatService(market, "alice")

        async def broken(counterparty):
            raise RuntimeError("window query failed")

        monkeypatch.setattr(service, "_last_messages", broken)

        conversations = await service.list_conversations()

        assert len(conversations) == 1
        assert conversations[0].last_message is None
        assert conversations[0].unread_count == 1
