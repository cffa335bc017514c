"""
Router for deals API
"""
from typing import Optional

from fastapi import APIRouter, Query

from dependencies import DealsServiceDepends, CurrentUserDepends, SettingsDepends
from routers.utils import retry_read
from schemas.chat import MessageResponse
from schemas.deals import (
    CreateDealRequest,
    UpdateDealStatusRequest,
    DealReplyRequest,
    DealResponse,
    DealDetailsResponse,
    DealListResponse,
    DealSummaryResponse,
)

router = APIRouter(
    prefix="/api/deals",
    tags=["deals"]
)


@router.post("", response_model=DealResponse, status_code=201)
async def create_deal(
    request: CreateDealRequest,
    current_user: CurrentUserDepends,
    deals_service: DealsServiceDepends,
):
    """
    Предложить сделку владельцу позиции

    Текущий пользователь становится инициатором, сделка создается в статусе pending.
    """
    return await deals_service.create_deal(
        initiator_id=current_user,
        recipient_id=request.recipient_id,
        initiator_item_type=request.initiator_item_type.value,
        initiator_item_id=request.initiator_item_id,
        recipient_item_type=request.recipient_item_type.value,
        recipient_item_id=request.recipient_item_id,
        message=request.message,
    )


@router.get("", response_model=DealListResponse)
async def list_deals(
    deals_service: DealsServiceDepends,
    settings: SettingsDepends,
    status: Optional[str] = Query(None, description="Filter by status: pending, active, completed, rejected"),
):
    """
    Список сделок текущего пользователя (инициатор или получатель), новые первыми

    Each deal carries both profiles and both item summaries.
    """
    result = await retry_read(
        deals_service.session, settings,
        lambda: deals_service.list_deals(status=status),
    )
    return DealListResponse(**result)


@router.get("/summary", response_model=DealSummaryResponse)
async def deals_summary(
    deals_service: DealsServiceDepends,
    settings: SettingsDepends,
):
    """Количество сделок текущего пользователя по статусам"""
    counts = await retry_read(deals_service.session, settings, deals_service.status_summary)
    return DealSummaryResponse(counts=counts, total=sum(counts.values()))


@router.get("/{deal_id}", response_model=DealDetailsResponse)
async def get_deal(
    deal_id: str,
    deals_service: DealsServiceDepends,
    settings: SettingsDepends,
):
    """Получить сделку (только для участников)"""
    return await retry_read(
        deals_service.session, settings,
        lambda: deals_service.get_deal(deal_id),
    )


@router.post("/{deal_id}/status", response_model=DealResponse)
async def update_deal_status(
    deal_id: str,
    request: UpdateDealStatusRequest,
    deals_service: DealsServiceDepends,
):
    """
    Изменить статус сделки

    pending -> active / rejected: только получатель;
    active -> completed: любой участник.
    """
    return await deals_service.update_status(deal_id, request.status)


@router.post("/{deal_id}/reply", response_model=MessageResponse, status_code=201)
async def reply_to_deal(
    deal_id: str,
    request: DealReplyRequest,
    deals_service: DealsServiceDepends,
):
    """Ответить контрагенту по сделке в чате (сделка не меняется)"""
    return await deals_service.reply_to_deal(deal_id, request.content)
