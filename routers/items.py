"""
Router for gigs and demands (read-only)
"""
from typing import List, Optional

from fastapi import APIRouter, Query

from core.exceptions import ValidationError
from dependencies import DbDepends, CurrentUserDepends, DealsServiceDepends, SettingsDepends
from routers.utils import retry_read
from schemas.items import ItemType, ItemResponse, ItemListResponse
from services.repository.items import ItemRepo, item_to_response

router = APIRouter(
    prefix="/api/items",
    tags=["items"]
)


@router.get("/offerable", response_model=List[ItemResponse])
async def list_offerable_items(
    deals_service: DealsServiceDepends,
    settings: SettingsDepends,
    target_type: str = Query(..., description="Type of the target item: gig or demand"),
):
    """
    Позиции текущего пользователя, которые можно предложить в сделке

    Gigs for a demand target, demands for a gig target.
    """
    return await retry_read(
        deals_service.session, settings,
        lambda: deals_service.list_offerable_items(target_type),
    )


@router.get("/{item_type}", response_model=ItemListResponse)
async def search_items(
    item_type: str,
    current_user: CurrentUserDepends,
    db: DbDepends,
    settings: SettingsDepends,
    query: Optional[str] = Query(None, description="Search in title and description"),
    category: Optional[str] = Query(None, description="Category slug"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
):
    """
    Search gigs or demands with filters and pagination

    Args:
        item_type: gig or demand
        query: Search query
        category: Category filter
        page: Page number (1-indexed)
        page_size: Number of items per page
    """
    try:
        kind = ItemType(item_type)
    except ValueError:
        raise ValidationError(f"Unknown item type: {item_type}")

    repo = ItemRepo(db, settings.store.call_timeout)
    items, total = await retry_read(
        db, settings,
        lambda: repo.search(kind, query=query, category=category, page=page, page_size=page_size),
    )
    return ItemListResponse(
        items=[item_to_response(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )
