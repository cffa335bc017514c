"""
Async HTTP client for the chat API

Used by Python consumers of the service (bots, integration scripts). Opening
a thread returns an ``OptimisticThread`` whose sends go through the API.
"""
import logging
from typing import Any, Dict, List, Optional, Type

import httpx
import jwt

from core.exceptions import (
    RizqError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DuplicateDealError,
    TransientError,
)
from schemas.chat import MessageResponse
from schemas.profiles import ProfileSummary
from services.chat.outbox import OptimisticThread

logger = logging.getLogger(__name__)

ERRORS_BY_CODE: Dict[str, Type[RizqError]] = {
    ValidationError.code: ValidationError,
    NotFoundError.code: NotFoundError,
    ForbiddenError.code: ForbiddenError,
    DuplicateDealError.code: DuplicateDealError,
    TransientError.code: TransientError,
}


def error_from_response(response: httpx.Response) -> RizqError:
    """Rebuild the domain error from an ``{"error", "detail"}`` body"""
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("error") if isinstance(body, dict) else None
    detail = body.get("detail") if isinstance(body, dict) else None
    message = detail if isinstance(detail, str) else f"HTTP {response.status_code}"

    if code in ERRORS_BY_CODE:
        return ERRORS_BY_CODE[code](message)
    if response.status_code in (401, 403):
        return ForbiddenError(message)
    if response.status_code == 404:
        return NotFoundError(message)
    if response.status_code >= 500:
        return TransientError(message)
    return ValidationError(message)


class ChatApiClient:
    """
    Client for ``/api/chat``

    Usage:
        async with ChatApiClient("https://api.rizq.app", token) as chat:
            thread = await chat.open_thread("bob")
            await thread.send("hi")
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root, e.g. https://api.rizq.app
            token: Bearer token issued by the auth platform
            timeout: Request timeout in seconds
            transport: Custom httpx transport (ASGI app in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport
        self.session: Optional[httpx.AsyncClient] = None

    @property
    def user_id(self) -> str:
        """Subject of the token (signature is checked by the server)"""
        claims = jwt.decode(self.token, options={"verify_signature": False})
        return str(claims["sub"])

    async def __aenter__(self):
        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.aclose()
            self.session = None

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if self.session is None:
            raise RuntimeError("ChatApiClient must be used as an async context manager")
        try:
            response = await self.session.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e
        if response.status_code >= 400:
            error = error_from_response(response)
            logger.debug("%s %s -> %s %s", method, path, response.status_code, error.code)
            raise error
        return response.json()

    async def send_message(self, recipient_id: str, content: str) -> MessageResponse:
        data = await self._request(
            "POST", "/api/chat/messages",
            json={"recipient_id": recipient_id, "content": content},
        )
        return MessageResponse(**data)

    async def get_thread(self, counterparty_id: str) -> List[MessageResponse]:
        """Messages with the counterparty, oldest first (marks incoming read)"""
        data = await self._request("GET", f"/api/chat/threads/{counterparty_id}")
        return [MessageResponse(**m) for m in data["messages"]]

    async def unread_count(self) -> int:
        data = await self._request("GET", "/api/chat/unread-count")
        return data["unread_count"]

    async def request_open_conversation(
        self,
        counterparty_id: str,
        counterparty_name: Optional[str] = None,
    ) -> ProfileSummary:
        data = await self._request(
            "POST", "/api/chat/open-requests",
            json={"counterparty_id": counterparty_id, "counterparty_name": counterparty_name},
        )
        return ProfileSummary(**data["counterparty"])

    async def open_thread(self, counterparty_id: str) -> OptimisticThread:
        """Load the thread and return an optimistic view sending through the API"""
        thread = OptimisticThread(self.user_id, counterparty_id, self.send_message)
        thread.load(await self.get_thread(counterparty_id))
        return thread
