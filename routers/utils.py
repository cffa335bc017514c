"""
Utility functions for routers
"""
import json
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

from fastapi import Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    RizqError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    DuplicateDealError,
    TransientError,
    SendFailedError,
)
from core.store import retry_transient
from settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    DuplicateDealError: status.HTTP_409_CONFLICT,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SendFailedError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: RizqError) -> int:
    """HTTP status for a domain error (most specific class wins)"""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def rizq_error_handler(request: Request, exc: RizqError) -> JSONResponse:
    """Render a domain error as ``{"error": code, "detail": message}``"""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": str(exc)},
        headers=headers,
    )


async def retry_read(session: AsyncSession, settings: Settings, fn: Callable[[], Awaitable[T]]) -> T:
    """
    Run an idempotent read, retrying on TransientError

    The session is rolled back between attempts so the next one starts
    from a clean transaction.
    """
    async def attempt():
        try:
            return await fn()
        except TransientError:
            try:
                await session.rollback()
            except Exception as e:
                logger.warning("rollback after transient error failed: %s", e)
            raise

    return await retry_transient(
        attempt,
        attempts=settings.store.retry_attempts,
        backoff=settings.store.retry_backoff,
    )


def format_sse(event: str, data: Any) -> str:
    """One Server-Sent Events frame"""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def sse_stream(
    updates: AsyncGenerator[Any, None],
    event: str,
    render: Callable[[Any], Any],
) -> AsyncGenerator[str, None]:
    """
    Render each value of ``updates`` as an SSE frame

    ``updates`` is closed together with the stream, so when the client
    disconnects its feed subscription is released.
    """
    try:
        async for value in updates:
            yield format_sse(event, render(value))
    except RizqError as e:
        logger.warning("%s stream stopped: %s", event, e)
        yield format_sse("error", {"error": e.code, "detail": str(e)})
    finally:
        await updates.aclose()


def sse_response(
    updates: AsyncGenerator[Any, None],
    event: str,
    render: Callable[[Any], Any],
) -> StreamingResponse:
    return StreamingResponse(
        sse_stream(updates, event, render),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
