"""
Optimistic outbox for a single conversation view

The pending entry is shown immediately with a ``temp-<uuid>`` id and is
reconciled only after the store call resolves: replaced by the persisted
message on success, retracted on failure.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from core.exceptions import SendFailedError, ValidationError
from core.utils import generate_temp_id, is_temp_id, utcnow
from schemas.chat import MessageResponse

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str], Awaitable[MessageResponse]]


class OptimisticThread:
    """
    Local, single-owner list of messages with a counterparty

    Usage:
        thread = OptimisticThread(user_id, counterparty_id, chat.send_message)
        thread.load((await chat.get_thread(counterparty_id))["messages"])
        try:
            await thread.send("hi")
        except SendFailedError as e:
            input_text = e.content
    """

    def __init__(self, owner_id: str, counterparty_id: str, send: SendFn):
        """
        Args:
            owner_id: ID текущего пользователя (отправитель)
            counterparty_id: ID собеседника
            send: Coroutine function (recipient_id, content) -> MessageResponse,
                  usually ``ChatService.send_message``
        """
        self.owner_id = owner_id
        self.counterparty_id = counterparty_id
        self._send = send
        self.messages: List[MessageResponse] = []

    def load(self, messages: List[MessageResponse]) -> None:
        """Replace the list with persisted messages (e.g. a fresh thread fetch)"""
        self.messages = list(messages)

    @property
    def pending(self) -> List[MessageResponse]:
        return [m for m in self.messages if is_temp_id(m.id)]

    def _index_of(self, message_id: str) -> Optional[int]:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return None

    def apply(self, message: MessageResponse) -> None:
        """Insert or update a persisted message received from the change feed"""
        if message.sender_id not in (self.owner_id, self.counterparty_id):
            return
        if message.recipient_id not in (self.owner_id, self.counterparty_id):
            return
        index = self._index_of(message.id)
        if index is None:
            self.messages.append(message)
        else:
            self.messages[index] = message

    async def send(self, content: str) -> MessageResponse:
        """
        Send a message optimistically

        Raises:
            ValidationError: Blank content, nothing is appended
            SendFailedError: Store call failed; the pending entry is retracted
                             and the original content is carried for retry
        """
        if not (content or "").strip():
            raise ValidationError("Message content must not be empty")

        temp = MessageResponse(
            id=generate_temp_id(),
            sender_id=self.owner_id,
            recipient_id=self.counterparty_id,
            content=content.strip(),
            is_read=False,
            created_at=utcnow(),
        )
        self.messages.append(temp)

        try:
            saved = await self._send(self.counterparty_id, content)
        except Exception as e:
            index = self._index_of(temp.id)
            if index is not None:
                del self.messages[index]
            logger.warning("send to %s failed, pending message retracted: %s", self.counterparty_id, e)
            raise SendFailedError(content, e) from e

        index = self._index_of(temp.id)
        # Событие из фида могло прийти раньше ответа
        if self._index_of(saved.id) is not None:
            if index is not None:
                del self.messages[index]
        elif index is not None:
            self.messages[index] = saved
        else:
            self.messages.append(saved)
        return saved
