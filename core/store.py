"""
Helpers for talking to the relational store

Every call goes through ``store_call`` which applies a per-call timeout and
turns connection-level failures into ``TransientError``. Only
``TransientError`` is ever retried (see ``retry_transient``).
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ForbiddenError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE коды PostgreSQL
UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"


def get_sqlstate(exc: BaseException) -> Optional[str]:
    """Extract SQLSTATE from a DBAPI error (asyncpg/psycopg expose it differently)"""
    orig = getattr(exc, "orig", None)
    for source in (orig, getattr(orig, "__cause__", None)):
        if source is None:
            continue
        code = getattr(source, "sqlstate", None) or getattr(source, "pgcode", None)
        if code:
            return str(code)
    return None


def is_unique_violation(exc: BaseException) -> bool:
    from sqlalchemy.exc import IntegrityError

    if not isinstance(exc, IntegrityError):
        return False
    code = get_sqlstate(exc)
    # SQLite не отдает SQLSTATE, только текст
    return code == UNIQUE_VIOLATION or (code is None and "UNIQUE" in str(exc.orig).upper())


def classify_store_error(exc: BaseException) -> Optional[Exception]:
    """
    Map a store exception to a domain error

    Returns:
        TransientError / ForbiddenError, or None if the error should propagate as is
    """
    if isinstance(exc, asyncio.TimeoutError):
        return TransientError("Store call timed out")
    if isinstance(exc, (OperationalError, InterfaceError)):
        return TransientError(f"Store unavailable: {exc.orig if hasattr(exc, 'orig') else exc}")
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return TransientError("Store connection lost")
        if get_sqlstate(exc) == INSUFFICIENT_PRIVILEGE:
            return ForbiddenError("Permission denied by the store")
    return None


async def store_call(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """
    Await a store call with an optional timeout

    Raises:
        TransientError: On timeout or connection failure
        ForbiddenError: If the store rejected the call with a permission error
    """
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except (asyncio.TimeoutError, SQLAlchemyError) as e:
        mapped = classify_store_error(e)
        if mapped is None:
            raise
        raise mapped from e


async def execute(session: AsyncSession, statement: Any, timeout: Optional[float] = None):
    """Execute a statement on the session under ``store_call``"""
    return await store_call(session.execute(statement), timeout)


async def commit(session: AsyncSession, timeout: Optional[float] = None) -> None:
    """Commit the session; roll back before re-raising on any failure"""
    try:
        await store_call(session.commit(), timeout)
    except Exception:
        await session.rollback()
        raise


async def retry_transient(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff: float = 0.2,
) -> T:
    """
    Call ``fn`` until it succeeds, retrying only on TransientError

    Delay before attempt ``n`` (0-based) is ``backoff * 2 ** (n - 1)``.

    Args:
        fn: Zero-argument coroutine factory (a new coroutine per attempt)
        attempts: Total number of attempts (>= 1)
        backoff: Base delay in seconds
    """
    last_error: Optional[TransientError] = None
    for attempt in range(max(1, attempts)):
        if attempt > 0:
            await asyncio.sleep(backoff * (2 ** (attempt - 1)))
        try:
            return await fn()
        except TransientError as e:
            logger.warning("transient store error (attempt %s/%s): %s", attempt + 1, attempts, e)
            last_error = e
    raise last_error
