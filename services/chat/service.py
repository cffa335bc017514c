"""
Service for managing direct messages and conversations
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update, and_, or_, case

from core import store
from core.exceptions import ValidationError, NotFoundError, ForbiddenError, TransientError
from core.utils import utcnow, as_utc
from db.models import Message
from schemas.chat import MessageResponse, ConversationResponse
from schemas.profiles import ProfileSummary
from services.chat.requests import request_open_conversation
from services.realtime import INSERT, UPDATE, publish_change
from services.repository.profiles import ProfileRepo, profile_summary

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"


def message_to_response(message) -> MessageResponse:
    """Convert a Message row (ORM object or selected row) to response schema"""
    return MessageResponse(
        id=message.uid,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        content=message.content,
        is_read=bool(message.is_read),
        read_at=as_utc(message.read_at),
        created_at=as_utc(message.created_at),
    )


class ChatService:
    """Service for managing direct messages and conversations"""

    def __init__(
        self,
        session: AsyncSession,
        owner_id: str,
        feed=None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize chat service

        Args:
            session: Database async session
            owner_id: ID пользователя, от имени которого выполняются операции
            feed: Change feed for insert/update notifications (optional)
            timeout: Per-call store timeout in seconds
        """
        self.session = session
        self.owner_id = owner_id
        self.feed = feed
        self.timeout = timeout
        self.profiles = ProfileRepo(session, timeout)

    async def _execute(self, statement):
        return await store.execute(self.session, statement, self.timeout)

    def _between(self, user_a: str, user_b: str):
        return or_(
            and_(Message.sender_id == user_a, Message.recipient_id == user_b),
            and_(Message.sender_id == user_b, Message.recipient_id == user_a),
        )

    async def _publish(self, event_type: str, message: MessageResponse) -> None:
        await publish_change(self.feed, MESSAGES_TABLE, event_type, message.model_dump(mode="json"))

    async def send_message(self, recipient_id: str, content: str) -> MessageResponse:
        """
        Send a message from owner_id to recipient_id

        Raises:
            ValidationError: Blank content, missing or self recipient
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content must not be empty")
        if not recipient_id:
            raise ValidationError("Recipient is required")
        if recipient_id == self.owner_id:
            raise ValidationError("Cannot send a message to yourself")

        message = Message(
            sender_id=self.owner_id,
            recipient_id=recipient_id,
            content=text,
            is_read=False,
        )
        self.session.add(message)
        await store.commit(self.session, self.timeout)
        await store.store_call(self.session.refresh(message), self.timeout)

        response = message_to_response(message)
        logger.debug("message %s sent %s -> %s", response.id, self.owner_id, recipient_id)
        await self._publish(INSERT, response)
        return response

    async def get_thread(self, counterparty_id: str) -> Dict[str, Any]:
        """
        Get all messages between owner_id and counterparty_id, oldest first

        Unread messages addressed to owner_id are marked read as part of the
        fetch and are returned with ``is_read = True``.

        Returns:
            Dictionary with 'messages' (list of MessageResponse) and 'marked_read'
        """
        result = await self._execute(
            select(Message)
            .where(self._between(self.owner_id, counterparty_id))
            .order_by(Message.created_at.asc(), Message.pk.asc())
            .execution_options(populate_existing=True)
        )
        messages = list(result.scalars().all())

        now = utcnow()
        changed = []
        for message in messages:
            if message.recipient_id == self.owner_id and not message.is_read:
                message.is_read = True
                message.read_at = now
                changed.append(message)

        responses = [message_to_response(m) for m in messages]

        if changed:
            await store.commit(self.session, self.timeout)
            changed_ids = {m.uid for m in changed}
            for response in responses:
                if response.id in changed_ids:
                    await self._publish(UPDATE, response)

        return {
            "messages": responses,
            "marked_read": len(changed),
        }

    async def mark_read(self, message_id: str) -> int:
        """
        Mark a single message read (idempotent)

        Returns:
            Number of messages that changed (0 or 1)

        Raises:
            NotFoundError: Unknown message
            ForbiddenError: owner_id is not the recipient
        """
        result = await self._execute(
            select(Message)
            .where(Message.uid == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise NotFoundError(f"Message {message_id} not found", resource_id=message_id)
        if message.recipient_id != self.owner_id:
            raise ForbiddenError(
                "Only the recipient can mark a message as read",
                resource_id=message_id,
                attempted_by=self.owner_id,
            )
        if message.is_read:
            return 0

        now = utcnow()
        result = await self._execute(
            update(Message)
            .where(Message.uid == message_id, Message.is_read.is_(False))
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount or 0
        await store.commit(self.session, self.timeout)

        if updated:
            response = message_to_response(message).model_copy(update={"is_read": True, "read_at": now})
            await self._publish(UPDATE, response)
        return updated

    async def mark_all_read(self, sender_id: str) -> int:
        """
        Mark every unread message from sender_id to owner_id as read

        Returns:
            Number of messages that changed
        """
        unread_ids = await self._unread_ids_from(sender_id)
        if not unread_ids:
            return 0

        now = utcnow()
        result = await self._execute(
            update(Message)
            .where(
                Message.uid.in_(unread_ids),
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount or 0

        # Только строки, помеченные этим запросом (read_at == now)
        changed = []
        if updated:
            result = await self._execute(
                select(Message)
                .where(Message.uid.in_(unread_ids), Message.read_at == now)
                .order_by(Message.created_at, Message.pk)
                .execution_options(populate_existing=True)
            )
            changed = [message_to_response(m) for m in result.scalars().all()]
        await store.commit(self.session, self.timeout)

        for response in changed:
            await self._publish(UPDATE, response)
        logger.debug("marked %s messages from %s to %s as read", updated, sender_id, self.owner_id)
        return updated

    async def _unread_ids_from(self, sender_id: str) -> List[str]:
        result = await self._execute(
            select(Message.uid).where(
                Message.sender_id == sender_id,
                Message.recipient_id == self.owner_id,
                Message.is_read.is_(False),
            )
        )
        return list(result.scalars().all())

    async def request_open_conversation(
        self,
        counterparty_id: str,
        counterparty_name: Optional[str] = None,
    ) -> ProfileSummary:
        """
        Ask owner_id's open conversation views to focus ``counterparty_id``

        The display name falls back to the counterparty profile.

        Raises:
            ValidationError: Missing or self counterparty
            TransientError: The request could not be published
        """
        if not counterparty_id:
            raise ValidationError("Counterparty is required")
        if counterparty_id == self.owner_id:
            raise ValidationError("Cannot open a conversation with yourself")

        profiles = await self.profiles.map_by_ids([counterparty_id])
        counterparty = profile_summary(counterparty_id, profiles.get(counterparty_id))
        if counterparty_name and counterparty_name.strip():
            counterparty = counterparty.model_copy(update={"full_name": counterparty_name.strip()})

        if self.feed is not None:
            try:
                await request_open_conversation(self.feed, self.owner_id, counterparty_id, counterparty.full_name)
            except Exception as e:
                raise TransientError(f"Open conversation request was not delivered: {e}") from e
        return counterparty

    async def unread_count(self) -> int:
        """Count unread messages addressed to owner_id"""
        result = await self._execute(
            select(func.count(Message.pk)).where(
                Message.recipient_id == self.owner_id,
                Message.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def _unread_by_sender(self) -> Dict[str, int]:
        result = await self._execute(
            select(Message.sender_id, func.count(Message.pk))
            .where(
                Message.recipient_id == self.owner_id,
                Message.is_read.is_(False),
            )
            .group_by(Message.sender_id)
        )
        return {sender_id: count for sender_id, count in result.all()}

    async def _last_messages(self, counterparty) -> Dict[str, MessageResponse]:
        """Last message per counterparty, in either direction"""
        ranked = (
            select(
                Message.uid,
                Message.sender_id,
                Message.recipient_id,
                Message.content,
                Message.is_read,
                Message.read_at,
                Message.created_at,
                counterparty.label("counterparty_id"),
                func.row_number().over(
                    partition_by=counterparty,
                    order_by=(Message.created_at.desc(), Message.pk.desc()),
                ).label("rn"),
            )
            .where(or_(Message.sender_id == self.owner_id, Message.recipient_id == self.owner_id))
            .subquery()
        )
        result = await self._execute(select(ranked).where(ranked.c.rn == 1))
        return {row.counterparty_id: message_to_response(row) for row in result.all()}

    async def list_conversations(self) -> List[ConversationResponse]:
        """
        Get one conversation per distinct counterparty of owner_id

        Sorted by last message time descending; conversations whose last
        message could not be resolved come last. A failed last-message or
        profile lookup degrades that part of the result instead of failing
        the whole list.

        Returns:
            List of ConversationResponse (empty if the user has no messages)
        """
        counterparty = case(
            (Message.sender_id == self.owner_id, Message.recipient_id),
            else_=Message.sender_id,
        )
        result = await self._execute(
            select(counterparty.label("counterparty_id"))
            .where(or_(Message.sender_id == self.owner_id, Message.recipient_id == self.owner_id))
            .distinct()
        )
        counterparty_ids = [row.counterparty_id for row in result.all()]
        if not counterparty_ids:
            return []

        unread = await self._unread_by_sender()

        try:
            last_messages = await self._last_messages(counterparty)
        except Exception as e:
            logger.warning("list_conversations: failed to load last messages for %s: %s", self.owner_id, e)
            await self.session.rollback()
            last_messages = {}

        try:
            profiles = {
                user_id: profile_summary(user_id, profile)
                for user_id, profile in (await self.profiles.map_by_ids(counterparty_ids)).items()
            }
        except Exception as e:
            logger.warning("list_conversations: failed to load profiles for %s: %s", self.owner_id, e)
            await self.session.rollback()
            profiles = {}

        with_message = []
        without_message = []
        for counterparty_id in counterparty_ids:
            last_message = last_messages.get(counterparty_id)
            if counterparty_id not in profiles:
                logger.warning("list_conversations: profile %s unavailable, using placeholder", counterparty_id)
            conversation = ConversationResponse(
                counterparty_id=counterparty_id,
                counterparty=profiles.get(counterparty_id) or profile_summary(counterparty_id, None),
                last_message=last_message,
                last_message_at=last_message.created_at if last_message else None,
                unread_count=unread.get(counterparty_id, 0),
            )
            if last_message is None:
                without_message.append(conversation)
            else:
                with_message.append(conversation)

        with_message.sort(key=lambda c: c.last_message_at, reverse=True)
        without_message.sort(key=lambda c: c.counterparty_id)
        return with_message + without_message
