"""
Claim lifecycle engine.

A claim is submitted against an active item, stays pending until exactly
one admin decision, and on approval drives the item to ``claimed`` and
awards the claimant points. Decisions are first-writer-wins: the status
update is conditional on the claim still being pending.

Claim, item and point writes are separate commits. If the point award
fails the claim stays approved with ``points_awarded`` unset;
``apply_approval_effects`` re-applies the missing effects and is safe to
run any number of times.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.config import CLAIM_APPROVAL_POINTS
from app.models.claim import Claim, ClaimStatus
from app.models.item import Item
from app.models.user import REPORTER_ROLES, User
from app.services import item_registry, notifier
from app.services.errors import (
    AlreadyReviewed,
    DuplicateClaim,
    InternalError,
    InvalidState,
    NotFound,
    PermissionDenied,
    SelfClaim,
)
from app.services.points import award_claim_points
from app.services.transitions import (
    OPEN_CLAIM_STATUSES,
    check_claim_decision,
    check_item_handover,
    is_claimable,
)


logger = logging.getLogger(__name__)


def get_claim_or_404(session: Session, claim_id: uuid.UUID) -> Claim:
    claim = session.get(Claim, claim_id)
    if not claim:
        raise NotFound("Claim not found")
    return claim


def find_open_claim(session: Session, item_id: uuid.UUID, claimant_id: int) -> Optional[Claim]:
    return session.exec(
        select(Claim)
        .where(Claim.item_id == item_id)
        .where(Claim.claimant_id == claimant_id)
        .where(Claim.status.in_(OPEN_CLAIM_STATUSES))
    ).first()


def submit_claim(
    session: Session,
    claimant: User,
    item_id: uuid.UUID,
    proof_description: str,
    proof_image: Optional[str] = None,
) -> Claim:
    if claimant.role not in REPORTER_ROLES:
        raise PermissionDenied("Only students, staff and teachers can submit claims")

    item = session.get(Item, item_id)
    if not item:
        raise NotFound("Item not found")

    # checked before the status so a poster always gets the same answer
    if item.poster_id == claimant.id:
        raise SelfClaim("You cannot claim your own item")

    if not is_claimable(item.status):
        raise InvalidState("Item is not available for claiming")

    existing = find_open_claim(session, item.id, claimant.id)
    if existing:
        raise DuplicateClaim(existing.status.value)

    claim = Claim(
        item_id=item.id,
        claimant_id=claimant.id,
        proof_description=proof_description,
        proof_image=proof_image,
    )

    try:
        session.add(claim)
        session.commit()
    except IntegrityError:
        # lost the race against a concurrent submission; the open-claim index rejected ours
        session.rollback()
        winner = find_open_claim(session, item_id, claimant.id)
        raise DuplicateClaim(winner.status.value if winner else ClaimStatus.pending.value)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create claim on item %s", item_id)
        raise InternalError("Failed to create claim")

    session.refresh(claim)
    logger.info("Claim %s submitted by user %s for item %s", claim.id, claimant.id, item.id)

    notifier.notify(
        session,
        notifier.Event.claim_submitted,
        claim=claim,
        item=item,
        admin_ids=notifier.list_admin_ids(session),
    )
    session.refresh(claim)

    return claim


def decide_claim(
    session: Session,
    admin: User,
    claim_id: uuid.UUID,
    decision: ClaimStatus,
    admin_notes: Optional[str] = None,
) -> Claim:
    if not item_registry.is_admin(admin):
        raise PermissionDenied("Admin access required")

    claim = get_claim_or_404(session, claim_id)
    check_claim_decision(claim.status, decision)

    item = session.get(Item, claim.item_id)
    if not item:
        raise NotFound("Item not found")

    # approving a claim on an item that was claimed or archived meanwhile is refused
    # before anything is written
    if decision == ClaimStatus.approved:
        check_item_handover(item.status, item.claimed_by, claim.claimant_id)

    now = datetime.now(timezone.utc)

    try:
        result = session.execute(
            update(Claim)
            .where(Claim.id == claim.id)
            .where(Claim.status == ClaimStatus.pending)
            .values(
                status=decision,
                reviewed_by=admin.id,
                reviewed_at=now,
                admin_notes=admin_notes,
                updated_at=now,
            )
        )

        if result.rowcount == 0:
            session.rollback()
            raise AlreadyReviewed("Claim has already been reviewed")

        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to record decision on claim %s", claim_id)
        raise InternalError("Failed to update claim status")

    session.refresh(claim)
    logger.info("Admin %s %s claim %s", admin.id, decision.value, claim.id)

    if decision == ClaimStatus.approved:
        _apply_approval_effects(session, claim)

    notifier.notify(session, notifier.Event.claim_decided, claim=claim, item=item)

    session.refresh(claim)
    return claim


def _apply_approval_effects(session: Session, claim: Claim) -> bool:
    """Item transition then point award. Returns whether points were awarded now."""
    try:
        item_registry.mark_claimed(session, claim.item_id, claim.claimant_id)
        session.commit()
    except InvalidState:
        session.rollback()
        raise
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to mark item %s claimed for claim %s", claim.item_id, claim.id)
        raise InternalError("Failed to update item status")

    # best-effort: the claim stays approved if this fails
    try:
        return award_claim_points(session, claim.id, claim.claimant_id, CLAIM_APPROVAL_POINTS)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Failed to award %d points to user %s for claim %s",
            CLAIM_APPROVAL_POINTS, claim.claimant_id, claim.id,
        )
        return False


def apply_approval_effects(session: Session, admin: User, claim_id: uuid.UUID) -> Claim:
    """Re-apply the item handover and point award of an approved claim.

    The item is handed to the claimant whenever it is ``active``, including
    after an admin reopened it: an admin running this on the old claim asks
    for that handover. Archived items, or items claimed by someone else,
    are refused with ``InvalidState``.
    """
    if not item_registry.is_admin(admin):
        raise PermissionDenied("Admin access required")

    claim = get_claim_or_404(session, claim_id)
    if claim.status != ClaimStatus.approved:
        raise InvalidState("Only approved claims have approval effects")

    awarded = _apply_approval_effects(session, claim)
    logger.info("Approval effects re-applied for claim %s (points awarded now: %s)", claim.id, awarded)

    session.refresh(claim)
    return claim


def can_view(viewer: User, claim: Claim) -> bool:
    return claim.claimant_id == viewer.id or item_registry.is_admin(viewer)


def get_claim(session: Session, viewer: User, claim_id: uuid.UUID) -> Claim:
    claim = get_claim_or_404(session, claim_id)

    if not can_view(viewer, claim):
        raise PermissionDenied("Permission denied")

    return claim


def list_claims(
    session: Session,
    viewer: User,
    status: Optional[ClaimStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Claim], int]:
    query = select(Claim)

    if status:
        query = query.where(Claim.status == status)

    # Non-admin users only see their own claims
    if not item_registry.is_admin(viewer):
        query = query.where(Claim.claimant_id == viewer.id)

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    claims = session.exec(
        query
        .order_by(Claim.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return list(claims), total


def claim_statistics(session: Session) -> dict:
    rows = session.exec(
        select(Claim.status, func.count(Claim.id)).group_by(Claim.status)
    ).all()

    counts = {status.value: 0 for status in ClaimStatus}
    for status, count in rows:
        counts[ClaimStatus(status).value] = count

    return {"total": sum(counts.values()), **counts}
