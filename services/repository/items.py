"""
Item repository: read access to gigs and demands
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, func, or_

from db.models import Gig, Demand
from schemas.items import ItemType, ItemResponse
from services.repository.base import BaseRepo

Item = Union[Gig, Demand]


class GigRepo(BaseRepo):
    model = Gig


class DemandRepo(BaseRepo):
    model = Demand


def item_amount(item: Item) -> Optional[Decimal]:
    """Price of a gig or budget of a demand"""
    value = item.price if isinstance(item, Gig) else item.budget
    return Decimal(value) if value is not None else None


def item_to_response(item: Item) -> ItemResponse:
    return ItemResponse(
        id=item.id,
        type=ItemType.GIG if isinstance(item, Gig) else ItemType.DEMAND,
        user_id=item.user_id,
        title=item.title,
        description=item.description,
        category=item.category,
        amount=item_amount(item),
        created_at=item.created_at,
    )


class ItemRepo:
    """Facade over gigs and demands, dispatching on ItemType"""

    def __init__(self, session, timeout: Optional[float] = None):
        self.gigs = GigRepo(session, timeout)
        self.demands = DemandRepo(session, timeout)

    def _repo(self, item_type: ItemType) -> BaseRepo:
        return self.gigs if ItemType(item_type) is ItemType.GIG else self.demands

    async def get_gig(self, gig_id: str) -> Optional[Gig]:
        return await self.gigs.get(gig_id)

    async def get_demand(self, demand_id: str) -> Optional[Demand]:
        return await self.demands.get(demand_id)

    async def get_item(self, item_type: ItemType, item_id: str) -> Optional[Item]:
        return await self._repo(item_type).get(item_id)

    async def map_by_ids(self, item_type: ItemType, ids: Iterable[str]) -> Dict[str, Item]:
        return {item.id: item for item in await self._repo(item_type).list_by_ids(ids)}

    async def list_user_items(self, item_type: ItemType, user_id: str) -> List[Item]:
        """All items of the given type owned by the user, newest first"""
        repo = self._repo(item_type)
        model = repo.model
        result = await repo.execute(
            select(model)
            .where(model.user_id == user_id)
            .order_by(model.created_at.desc())
        )
        return list(result.scalars().all())

    async def search(
        self,
        item_type: ItemType,
        query: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Item], int]:
        """
        Search items with filters and pagination

        Args:
            item_type: gig or demand
            query: Search query (title or description, case-insensitive)
            category: Filter by category slug
            page: Page number (1-indexed)
            page_size: Number of items per page

        Returns:
            Tuple of (list of items, total count)
        """
        repo = self._repo(item_type)
        model = repo.model
        conditions = []

        # Text search
        if query and query.strip():
            search_term = f"%{query.strip()}%"
            conditions.append(
                or_(
                    model.title.ilike(search_term),
                    model.description.ilike(search_term)
                )
            )

        # Category filter
        if category:
            conditions.append(model.category == category)

        stmt = select(model)
        if conditions:
            stmt = stmt.where(*conditions)

        count_result = await repo.execute(select(func.count()).select_from(stmt.subquery()))
        total = count_result.scalar() or 0

        offset = (page - 1) * page_size
        result = await repo.execute(
            stmt.order_by(model.created_at.desc()).offset(offset).limit(page_size)
        )
        return list(result.scalars().all()), total
