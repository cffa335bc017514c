"""
Live conversation views

Async generators that yield a fresh result first and then again after every
``messages`` change involving the user. The feed subscription lives exactly
as long as the generator: closing it (``aclose()`` or leaving ``async for``)
releases the handle.
"""
import logging
from typing import AsyncIterator, Callable, List, Optional

from schemas.chat import ConversationResponse
from services.chat.service import ChatService, MESSAGES_TABLE

logger = logging.getLogger(__name__)


def _subscribe(feed, user_id: str):
    return feed.subscribe(
        MESSAGES_TABLE,
        any_of=[{"sender_id": user_id}, {"recipient_id": user_id}],
    )


async def _conversations(session_factory: Callable, user_id: str, timeout: Optional[float]) -> List[ConversationResponse]:
    async with session_factory() as session:
        return await ChatService(session, user_id, timeout=timeout).list_conversations()


async def _unread(session_factory: Callable, user_id: str, timeout: Optional[float]) -> int:
    async with session_factory() as session:
        return await ChatService(session, user_id, timeout=timeout).unread_count()


async def watch_conversations(
    feed,
    session_factory: Callable,
    user_id: str,
    timeout: Optional[float] = None,
) -> AsyncIterator[List[ConversationResponse]]:
    """
    Yield the conversation list of ``user_id`` now and after each relevant change

    A burst of events queued while recomputing collapses into one refresh.
    """
    # Подписка до первой загрузки, чтобы не потерять изменения между ними
    async with _subscribe(feed, user_id) as subscription:
        yield await _conversations(session_factory, user_id, timeout)
        async for event in subscription:
            skipped = subscription.drain()
            logger.debug("conversations of %s refreshed after %s event(s)", user_id, len(skipped) + 1)
            yield await _conversations(session_factory, user_id, timeout)


async def watch_unread_count(
    feed,
    session_factory: Callable,
    user_id: str,
    timeout: Optional[float] = None,
) -> AsyncIterator[int]:
    """Yield the unread count of ``user_id`` now and after each relevant change"""
    async with _subscribe(feed, user_id) as subscription:
        yield await _unread(session_factory, user_id, timeout)
        async for event in subscription:
            subscription.drain()
            yield await _unread(session_factory, user_id, timeout)
