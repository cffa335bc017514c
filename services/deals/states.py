"""
Deal status state machine
"""
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from core.exceptions import ForbiddenError, InvalidTransitionError


class DealStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    REJECTED = "rejected"


OPEN_STATUSES = (DealStatus.PENDING.value, DealStatus.ACTIVE.value)

INITIATOR = "initiator"
RECIPIENT = "recipient"

# (from, to) -> роли, которым разрешен переход
TRANSITIONS: Dict[Tuple[DealStatus, DealStatus], FrozenSet[str]] = {
    (DealStatus.PENDING, DealStatus.ACTIVE): frozenset({RECIPIENT}),
    (DealStatus.PENDING, DealStatus.REJECTED): frozenset({RECIPIENT}),
    (DealStatus.ACTIVE, DealStatus.COMPLETED): frozenset({INITIATOR, RECIPIENT}),
}


def check_transition(deal_uid: str, current: str, requested: str, role: str) -> DealStatus:
    """
    Validate a status change for an actor playing ``role`` in the deal

    The edge is checked before the role, so an impossible change is always
    reported as InvalidTransitionError regardless of who asked.

    Returns:
        The requested status as DealStatus

    Raises:
        InvalidTransitionError: Unknown status or no such edge
        ForbiddenError: Edge exists but ``role`` may not take it
    """
    try:
        source = DealStatus(current)
        target = DealStatus(requested)
    except ValueError:
        raise InvalidTransitionError(deal_uid, current, requested)

    allowed = TRANSITIONS.get((source, target))
    if allowed is None:
        raise InvalidTransitionError(deal_uid, current, requested)
    if role not in allowed:
        raise ForbiddenError(
            f"Only the {' or '.join(sorted(allowed))} may move a deal from '{current}' to '{requested}'",
            resource_id=deal_uid,
        )
    return target
