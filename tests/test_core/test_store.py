"""
Tests for store call helpers: timeouts, error classification, retries
"""
import asyncio
import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from core import store
from core.exceptions import ForbiddenError, TransientError, ValidationError


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


class TestStoreCall:

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def query():
            return 42
        assert await store.store_call(query(), timeout=1) == 42

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        with pytest.raises(TransientError):
            await store.store_call(asyncio.sleep(1), timeout=0.01)

    @pytest.mark.asyncio
    async def test_operational_error_is_transient(self):
        async def query():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(TransientError) as exc_info:
            await store.store_call(query())
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_permission_error_is_forbidden(self):
        async def query():
            raise DBAPIError("INSERT", {}, _PgError("42501"))

        with pytest.raises(ForbiddenError):
            await store.store_call(query())

    @pytest.mark.asyncio
    async def test_integrity_error_propagates(self):
        error = IntegrityError("INSERT", {}, _PgError("23505"))

        async def query():
            raise error

        with pytest.raises(IntegrityError):
            await store.store_call(query())
        assert store.is_unique_violation(error)

    def test_unique_violation_detection(self):
        assert store.is_unique_violation(
            IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: deals.uid"))
        )
        assert not store.is_unique_violation(IntegrityError("INSERT", {}, _PgError("23503")))
        assert not store.is_unique_violation(ValueError("nope"))


class TestRetryTransient:

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientError("timeout")
            return "ok"

        assert await store.retry_transient(flaky, attempts=3, backoff=0) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def down():
            calls.append(1)
            raise TransientError("still down")

        with pytest.raises(TransientError):
            await store.retry_transient(down, attempts=2, backoff=0)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        calls = []

        async def invalid():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            await store.retry_transient(invalid, attempts=5, backoff=0)
        assert len(calls) == 1
