"""
Requests to open a conversation view with a counterparty

Any part of the application can ask the conversation view to open a chat by
publishing an explicit event on the change feed; the view subscribes to
requests addressed to its user.
"""
import logging
from typing import AsyncIterator, Dict, Optional

from services.realtime import INSERT, ChangeEvent, Subscription

logger = logging.getLogger(__name__)

OPEN_REQUESTS_TABLE = "conversation_requests"


async def request_open_conversation(
    feed,
    user_id: str,
    counterparty_id: str,
    counterparty_name: Optional[str] = None,
) -> None:
    """Ask every open conversation view of ``user_id`` to focus ``counterparty_id``"""
    await feed.publish(
        ChangeEvent(
            table=OPEN_REQUESTS_TABLE,
            event_type=INSERT,
            record={
                "user_id": user_id,
                "counterparty_id": counterparty_id,
                "counterparty_name": counterparty_name,
            },
        )
    )
    logger.debug("open conversation requested: %s -> %s", user_id, counterparty_id)


def subscribe_open_requests(feed, user_id: str) -> Subscription:
    """Subscription for open requests addressed to ``user_id``"""
    return feed.subscribe(OPEN_REQUESTS_TABLE, INSERT, filter={"user_id": user_id})


async def watch_open_requests(feed, user_id: str) -> AsyncIterator[Dict[str, Optional[str]]]:
    """
    Yield ``{"counterparty_id", "counterparty_name"}`` for each request to ``user_id``

    The subscription is released when the generator is closed.
    """
    async with subscribe_open_requests(feed, user_id) as subscription:
        async for event in subscription:
            yield {
                "counterparty_id": event.record.get("counterparty_id"),
                "counterparty_name": event.record.get("counterparty_name"),
            }
