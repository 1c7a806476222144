"""
Status state machines for items and claims.

Every code path that changes a status asks this module first instead of
comparing status strings inline.
"""
from typing import Optional

from app.models.claim import ClaimStatus
from app.models.item import ItemStatus
from app.services.errors import AlreadyReviewed, InvalidState


# Transitions the claim engine may drive. Admin overrides go through
# ADMIN_ITEM_TRANSITIONS instead.
ITEM_TRANSITIONS = {
    ItemStatus.active: {ItemStatus.claimed, ItemStatus.archived},
    ItemStatus.claimed: set(),
    ItemStatus.archived: set(),
}

# Admin escape hatch: any status to any other status
ADMIN_ITEM_TRANSITIONS = {
    status: set(ItemStatus) - {status} for status in ItemStatus
}

CLAIM_TRANSITIONS = {
    ClaimStatus.pending: {ClaimStatus.approved, ClaimStatus.rejected},
    ClaimStatus.approved: set(),
    ClaimStatus.rejected: set(),
}

# Claim statuses that block the same claimant from claiming the item again
OPEN_CLAIM_STATUSES = (ClaimStatus.pending, ClaimStatus.approved)

DECISIONS = (ClaimStatus.approved, ClaimStatus.rejected)


def is_claimable(item_status: ItemStatus) -> bool:
    return ItemStatus.claimed in ITEM_TRANSITIONS[item_status]


def check_item_transition(current: ItemStatus, target: ItemStatus, admin: bool = False):
    allowed = ADMIN_ITEM_TRANSITIONS if admin else ITEM_TRANSITIONS
    if target != current and target not in allowed[current]:
        raise InvalidState(f"Item cannot move from '{current.value}' to '{target.value}'")


def check_item_handover(current: ItemStatus, claimed_by: Optional[int], claimant_id: int):
    """Guard for moving an item to claimed on behalf of an approved claim.

    Handing it over again to the same claimant is allowed; a claimed item
    never changes hands through the engine.
    """
    if current == ItemStatus.claimed:
        if claimed_by == claimant_id:
            return
        raise InvalidState("Item is no longer available for claiming")

    check_item_transition(current, ItemStatus.claimed)


def check_claim_decision(current: ClaimStatus, decision: ClaimStatus):
    if decision not in DECISIONS:
        raise InvalidState(f"'{decision.value}' is not a claim decision")

    if decision not in CLAIM_TRANSITIONS[current]:
        raise AlreadyReviewed("Claim has already been reviewed")
