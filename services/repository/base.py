"""
Base repository class for read-only collaborator tables
"""
from typing import Any, Iterable, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core import store


class BaseRepo:
    """
    Base repository class bound to a single ORM model

    Subclasses set ``model``; the model must have an ``id`` primary key column.
    All calls go through ``core.store`` so they share the per-call timeout and
    error classification.

    Usage:
        class ProfileRepo(BaseRepo):
            model = Profile

        repo = ProfileRepo(session, timeout=5)
        profile = await repo.get("user-1")
    """

    model: Optional[Type[Any]] = None

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        """
        Initialize repository

        Args:
            session: SQLAlchemy async session
            timeout: Per-call timeout in seconds (None - no timeout)
        """
        self.session = session
        self.timeout = timeout

    async def execute(self, statement):
        return await store.execute(self.session, statement, self.timeout)

    async def get(self, record_id: str):
        """
        Get record by id

        Returns:
            Model instance or None if not found
        """
        result = await self.execute(
            select(self.model).where(self.model.id == record_id)
        )
        return result.scalar_one_or_none()

    async def list_by_ids(self, ids: Iterable[str]) -> List[Any]:
        """
        Get all records whose id is in ``ids``

        Missing ids are silently skipped.
        """
        id_list = list({i for i in ids if i})
        if not id_list:
            return []
        result = await self.execute(
            select(self.model).where(self.model.id.in_(id_list))
        )
        return list(result.scalars().all())
