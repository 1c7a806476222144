import pytest

from app.models.claim import ClaimStatus
from app.models.item import ItemStatus
from app.services.errors import AlreadyReviewed, InvalidState
from app.services.transitions import (
    check_claim_decision,
    check_item_transition,
    check_item_handover,
    is_claimable,
)


def test_only_active_items_are_claimable():
    assert is_claimable(ItemStatus.active)
    assert not is_claimable(ItemStatus.claimed)
    assert not is_claimable(ItemStatus.archived)


@pytest.mark.parametrize("target", [ItemStatus.claimed, ItemStatus.archived])
def test_active_item_can_move_on(target):
    check_item_transition(ItemStatus.active, target)


@pytest.mark.parametrize("current", [ItemStatus.claimed, ItemStatus.archived])
def test_closed_items_do_not_reopen_without_admin(current):
    with pytest.raises(InvalidState):
        check_item_transition(current, ItemStatus.active)


@pytest.mark.parametrize("current", list(ItemStatus))
@pytest.mark.parametrize("target", list(ItemStatus))
def test_admin_may_set_any_item_status(current, target):
    check_item_transition(current, target, admin=True)


def test_only_pending_claims_take_decisions():
    check_claim_decision(ClaimStatus.pending, ClaimStatus.approved)
    check_claim_decision(ClaimStatus.pending, ClaimStatus.rejected)


@pytest.mark.parametrize("current", [ClaimStatus.approved, ClaimStatus.rejected])
@pytest.mark.parametrize("decision", [ClaimStatus.approved, ClaimStatus.rejected])
def test_reviewed_claims_are_final(current, decision):
    with pytest.raises(AlreadyReviewed):
        check_claim_decision(current, decision)


def test_pending_is_not_a_decision():
    with pytest.raises(InvalidState):
        check_claim_decision(ClaimStatus.pending, ClaimStatus.pending)


def test_handover_from_active():
    check_item_handover(ItemStatus.active, None, 7)


def test_handover_again_to_same_claimant():
    check_item_handover(ItemStatus.claimed, 7, 7)


@pytest.mark.parametrize("current, claimed_by", [
    (ItemStatus.claimed, 3),
    (ItemStatus.claimed, None),
    (ItemStatus.archived, None),
])
def test_handover_refused(current, claimed_by):
    with pytest.raises(InvalidState):
        check_item_handover(current, claimed_by, 7)
