import uuid

from sqlalchemy import update
from sqlmodel import Session

from app.models.claim import Claim, ClaimStatus
from app.models.user import User


def add_points(session: Session, user_id: int, amount: int):
    # single UPDATE so concurrent awards cannot overwrite each other
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=User.points + amount)
    )


def award_claim_points(session: Session, claim_id: uuid.UUID, claimant_id: int, amount: int) -> bool:
    """Award the approval bonus for a claim at most once.

    The flag flip and the increment commit together. Returns False when the
    bonus was already awarded.
    """
    result = session.execute(
        update(Claim)
        .where(Claim.id == claim_id)
        .where(Claim.status == ClaimStatus.approved)
        .where(Claim.points_awarded == False)  # noqa: E712
        .values(points_awarded=True)
    )

    if result.rowcount == 0:
        session.rollback()
        return False

    add_points(session, claimant_id, amount)
    session.commit()
    return True
