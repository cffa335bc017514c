"""
Service for managing deals
"""
import logging
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from core import store
from core.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DuplicateDealError,
)
from core.utils import generate_base58_uuid, utcnow, as_utc
from db.models import Deal
from schemas.chat import MessageResponse
from schemas.deals import DealResponse, DealDetailsResponse, DealItemSummary
from schemas.items import ItemType, ItemResponse
from schemas.profiles import ProfileSummary
from services.chat.service import ChatService
from services.deals.states import DealStatus, OPEN_STATUSES, INITIATOR, RECIPIENT, check_transition
from services.realtime import INSERT, UPDATE, publish_change
from services.repository.items import ItemRepo, item_amount, item_to_response
from services.repository.profiles import ProfileRepo, profile_summary

logger = logging.getLogger(__name__)

DEALS_TABLE = "deals"


def deal_to_response(deal: Deal) -> DealResponse:
    return DealResponse(
        id=deal.uid,
        initiator_id=deal.initiator_id,
        recipient_id=deal.recipient_id,
        initiator_item_type=deal.initiator_item_type,
        initiator_item_id=deal.initiator_item_id,
        recipient_item_type=deal.recipient_item_type,
        recipient_item_id=deal.recipient_item_id,
        status=deal.status,
        message=deal.message,
        created_at=as_utc(deal.created_at),
        updated_at=as_utc(deal.updated_at),
    )


class DealsService:
    """Service for managing deals"""

    def __init__(
        self,
        session: AsyncSession,
        owner_id: str,
        feed=None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize deals service

        Args:
            session: Database async session
            owner_id: ID пользователя, от имени которого выполняются операции.
                      Все чтения фильтруются по участию (initiator или recipient)
            feed: Change feed for insert/update notifications (optional)
            timeout: Per-call store timeout in seconds
        """
        self.session = session
        self.owner_id = owner_id
        self.feed = feed
        self.timeout = timeout
        self.items = ItemRepo(session, timeout)
        self.profiles = ProfileRepo(session, timeout)

    async def _execute(self, statement):
        return await store.execute(self.session, statement, self.timeout)

    def _is_participant(self, deal: Deal) -> bool:
        return self.owner_id in (deal.initiator_id, deal.recipient_id)

    def _role(self, deal: Deal) -> Optional[str]:
        if deal.initiator_id == self.owner_id:
            return INITIATOR
        if deal.recipient_id == self.owner_id:
            return RECIPIENT
        return None

    async def _get_deal_row(self, deal_uid: str) -> Deal:
        """
        Load a deal the owner participates in

        Raises:
            NotFoundError: Unknown deal
            ForbiddenError: owner_id is not a participant
        """
        result = await self._execute(
            select(Deal).where(Deal.uid == deal_uid).execution_options(populate_existing=True)
        )
        deal = result.scalar_one_or_none()
        if deal is None:
            raise NotFoundError(f"Deal {deal_uid} not found", resource_id=deal_uid)
        if not self._is_participant(deal):
            raise ForbiddenError(
                f"User is not a participant of deal {deal_uid}",
                resource_id=deal_uid,
                attempted_by=self.owner_id,
            )
        return deal

    @staticmethod
    def _parse_item_type(value, side: str) -> ItemType:
        if not value:
            raise ValidationError(f"{side} item type is required")
        try:
            return ItemType(value)
        except ValueError:
            raise ValidationError(f"Unknown {side} item type: {value}")

    async def create_deal(
        self,
        initiator_id: str,
        recipient_id: str,
        initiator_item_type: str,
        initiator_item_id: str,
        recipient_item_type: str,
        recipient_item_id: str,
        message: str,
    ) -> DealResponse:
        """
        Create a new deal in ``pending`` status

        Args:
            initiator_id: ID инициатора (должен совпадать с owner_id)
            recipient_id: ID владельца целевой позиции
            initiator_item_type: gig or demand
            initiator_item_id: Item offered by the initiator
            recipient_item_type: gig or demand (the other type)
            recipient_item_id: Target item
            message: Note for the recipient

        Raises:
            ValidationError: Self-deal, blank message, bad item types or ids
            NotFoundError: A referenced item does not exist
            ForbiddenError: Items are not owned by their sides, or initiator is not owner_id
            DuplicateDealError: An open deal for the same items already exists
        """
        if initiator_id != self.owner_id:
            raise ForbiddenError(
                "Deals can only be created on behalf of the current user",
                attempted_by=self.owner_id,
            )
        if not recipient_id:
            raise ValidationError("Recipient is required")
        if initiator_id == recipient_id:
            raise ValidationError("Cannot create a deal with yourself")
        text = (message or "").strip()
        if not text:
            raise ValidationError("Deal message must not be empty")

        own_type = self._parse_item_type(initiator_item_type, "initiator")
        target_type = self._parse_item_type(recipient_item_type, "recipient")
        if not initiator_item_id or not recipient_item_id:
            raise ValidationError("Both item ids are required")
        if own_type is target_type:
            raise ValidationError("A deal must pair a gig with a demand")

        own_item = await self.items.get_item(own_type, initiator_item_id)
        if own_item is None:
            raise NotFoundError(f"{own_type.value} {initiator_item_id} not found", resource_id=initiator_item_id)
        target_item = await self.items.get_item(target_type, recipient_item_id)
        if target_item is None:
            raise NotFoundError(f"{target_type.value} {recipient_item_id} not found", resource_id=recipient_item_id)

        if own_item.user_id != initiator_id:
            raise ForbiddenError(
                "Offered item does not belong to the initiator",
                resource_id=initiator_item_id,
                attempted_by=self.owner_id,
            )
        if target_item.user_id != recipient_id:
            raise ForbiddenError(
                "Target item does not belong to the recipient",
                resource_id=recipient_item_id,
                attempted_by=self.owner_id,
            )

        # Проверяем, нет ли уже открытой сделки по этой паре позиций
        existing = await self._execute(
            select(Deal.uid).where(
                Deal.initiator_id == initiator_id,
                Deal.recipient_id == recipient_id,
                Deal.initiator_item_id == initiator_item_id,
                Deal.recipient_item_id == recipient_item_id,
                Deal.status.in_(OPEN_STATUSES),
            ).limit(1)
        )
        existing_uid = existing.scalar()
        if existing_uid is not None:
            raise DuplicateDealError(
                "An open deal for these items already exists",
                resource_id=existing_uid,
            )

        deal = Deal(
            uid=generate_base58_uuid(),
            initiator_id=initiator_id,
            recipient_id=recipient_id,
            initiator_item_type=own_type.value,
            initiator_item_id=initiator_item_id,
            recipient_item_type=target_type.value,
            recipient_item_id=recipient_item_id,
            status=DealStatus.PENDING.value,
            message=text,
        )
        self.session.add(deal)
        try:
            await store.commit(self.session, self.timeout)
        except IntegrityError as e:
            # Конкурентная вставка: сработал частичный уникальный индекс
            if store.is_unique_violation(e):
                raise DuplicateDealError("An open deal for these items already exists") from e
            raise
        await store.store_call(self.session.refresh(deal), self.timeout)

        response = deal_to_response(deal)
        logger.info("deal %s created by %s for %s", response.id, initiator_id, recipient_id)
        await publish_change(self.feed, DEALS_TABLE, INSERT, response.model_dump(mode="json"))
        return response

    async def _profiles_for(self, user_ids: Iterable[str]) -> Dict[str, ProfileSummary]:
        try:
            profiles = await self.profiles.map_by_ids(user_ids)
        except Exception as e:
            logger.warning("failed to load profiles, using placeholders: %s", e)
            await self.session.rollback()
            return {}
        return {user_id: profile_summary(user_id, profile) for user_id, profile in profiles.items()}

    async def _items_for(self, item_type: ItemType, ids: Iterable[str]) -> Dict[str, DealItemSummary]:
        ids = list(ids)
        if not ids:
            return {}
        try:
            items = await self.items.map_by_ids(item_type, ids)
        except Exception as e:
            logger.warning("failed to load %s items, using placeholders: %s", item_type.value, e)
            await self.session.rollback()
            return {}
        return {
            item_id: DealItemSummary(
                id=item_id,
                type=item_type,
                title=item.title,
                amount=item_amount(item),
            )
            for item_id, item in items.items()
        }

    @staticmethod
    def _item_summary(
        items: Dict[ItemType, Dict[str, DealItemSummary]],
        item_type: str,
        item_id: str,
    ) -> DealItemSummary:
        kind = ItemType(item_type)
        summary = items.get(kind, {}).get(item_id)
        if summary is None:
            logger.warning("%s %s unavailable, using placeholder", kind.value, item_id)
            return DealItemSummary(
                id=item_id,
                type=kind,
                title=kind.unavailable_title,
                amount=None,
                available=False,
            )
        return summary

    async def _join(self, deals: List[DealResponse]) -> List[DealDetailsResponse]:
        """Attach both profiles and both item summaries to each deal"""
        if not deals:
            return []

        user_ids = {d.initiator_id for d in deals} | {d.recipient_id for d in deals}
        wanted: Dict[ItemType, set] = {ItemType.GIG: set(), ItemType.DEMAND: set()}
        for d in deals:
            wanted[ItemType(d.initiator_item_type)].add(d.initiator_item_id)
            wanted[ItemType(d.recipient_item_type)].add(d.recipient_item_id)

        profiles = await self._profiles_for(user_ids)
        items = {
            item_type: await self._items_for(item_type, ids)
            for item_type, ids in wanted.items()
        }

        joined = []
        for d in deals:
            joined.append(
                DealDetailsResponse(
                    **d.model_dump(),
                    initiator=profiles.get(d.initiator_id) or profile_summary(d.initiator_id, None),
                    recipient=profiles.get(d.recipient_id) or profile_summary(d.recipient_id, None),
                    initiator_item=self._item_summary(items, d.initiator_item_type, d.initiator_item_id),
                    recipient_item=self._item_summary(items, d.recipient_item_type, d.recipient_item_id),
                )
            )
        return joined

    async def list_deals(self, status: Optional[str] = None) -> Dict[str, Any]:
        """
        List deals where owner_id is initiator or recipient, newest first

        Args:
            status: Optional status filter

        Returns:
            Dictionary with 'deals' (list of DealDetailsResponse) and 'total'
        """
        query = select(Deal).where(
            or_(
                Deal.initiator_id == self.owner_id,
                Deal.recipient_id == self.owner_id,
            )
        )
        if status:
            try:
                query = query.where(Deal.status == DealStatus(status).value)
            except ValueError:
                raise ValidationError(f"Unknown deal status: {status}")

        result = await self._execute(query.order_by(Deal.created_at.desc(), Deal.pk.desc()))
        # Снимок до вспомогательных запросов: rollback в них не должен задеть строки сделок
        deals = [deal_to_response(deal) for deal in result.scalars().all()]

        joined = await self._join(deals)
        return {
            "deals": joined,
            "total": len(joined),
        }

    async def get_deal(self, deal_uid: str) -> DealDetailsResponse:
        """
        Get a single joined deal (only if owner_id is a participant)

        Raises:
            NotFoundError: Unknown deal or owner_id is not a participant
        """
        try:
            deal = await self._get_deal_row(deal_uid)
        except ForbiddenError:
            raise NotFoundError(f"Deal {deal_uid} not found", resource_id=deal_uid)
        joined = await self._join([deal_to_response(deal)])
        return joined[0]

    async def update_status(self, deal_uid: str, new_status: str) -> DealResponse:
        """
        Move a deal to a new status

        Allowed changes:
            pending -> active     recipient only
            pending -> rejected   recipient only
            active  -> completed  initiator or recipient

        Raises:
            NotFoundError: Unknown deal
            ForbiddenError: Not a participant, or the edge exists but not for this role
            InvalidTransitionError: No such edge; the status is left unchanged
        """
        deal = await self._get_deal_row(deal_uid)
        current = deal.status
        target = check_transition(deal.uid, current, new_status, self._role(deal))

        deal.status = target.value
        deal.updated_at = utcnow()
        await store.commit(self.session, self.timeout)
        await store.store_call(self.session.refresh(deal), self.timeout)

        response = deal_to_response(deal)
        logger.info("deal %s: %s -> %s by %s", deal_uid, current, target.value, self.owner_id)
        await publish_change(self.feed, DEALS_TABLE, UPDATE, response.model_dump(mode="json"))
        return response

    async def reply_to_deal(self, deal_uid: str, content: str) -> MessageResponse:
        """
        Send a chat message to the counterparty of a deal

        The deal itself is not modified.
        """
        deal = await self._get_deal_row(deal_uid)
        counterparty_id = deal.recipient_id if deal.initiator_id == self.owner_id else deal.initiator_id
        chat = ChatService(self.session, self.owner_id, feed=self.feed, timeout=self.timeout)
        return await chat.send_message(counterparty_id, content)

    async def list_offerable_items(self, target_item_type: str) -> List[ItemResponse]:
        """
        Items owner_id can offer against a target of ``target_item_type``

        Gigs are offered against demands and demands against gigs.
        """
        target = self._parse_item_type(target_item_type, "target")
        items = await self.items.list_user_items(target.complement, self.owner_id)
        return [item_to_response(item) for item in items]

    async def status_summary(self) -> Dict[str, int]:
        """Count of owner_id's deals per status (every status is present)"""
        result = await self._execute(
            select(Deal.status, func.count(Deal.pk))
            .where(
                or_(
                    Deal.initiator_id == self.owner_id,
                    Deal.recipient_id == self.owner_id,
                )
            )
            .group_by(Deal.status)
        )
        counts = {status.value: 0 for status in DealStatus}
        for status, count in result.all():
            counts[status] = count
        return counts
