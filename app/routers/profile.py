import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func

from app.db.db import get_session
from app.models.claim import Claim, ClaimStatus
from app.models.item import Item, ItemStatus
from app.models.user import User
from app.routers.claims import claim_detail
from app.services.errors import InternalError
from app.utils.auth_helper import get_user
from app.utils.form_validator import validate_update_profile
from app.utils.s3_service import get_all_urls


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me")
async def get_my_profile(user: User = Depends(get_user)):
    return user


@router.put("")
def update_my_profile(
    updates: dict,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    patch = validate_update_profile(updates)

    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)

    try:
        session.add(user)
        session.commit()
        session.refresh(user)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to update profile of user %s", user.id)
        raise InternalError("Failed to update profile")

    return {
        "message": "Profile updated successfully",
        "user": user,
    }


@router.get("/items")
async def get_my_items(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    items = session.exec(
        select(Item)
        .where(Item.poster_id == user.id)
        .order_by(Item.created_at.desc())
    ).all()

    # Separate by type
    lost_items = [item for item in items if item.date_lost]
    found_items = [item for item in items if item.date_found]

    return {
        "lost_items": get_all_urls(lost_items),
        "found_items": get_all_urls(found_items),
    }


@router.get("/claims")
async def get_my_claims(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    claims = session.exec(
        select(Claim)
        .where(Claim.claimant_id == user.id)
        .order_by(Claim.created_at.desc())
    ).all()

    return {"claims": [claim_detail(session, claim) for claim in claims]}


@router.get("/statistics")
async def get_my_statistics(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    items_by_status = dict(session.exec(
        select(Item.status, func.count(Item.id))
        .where(Item.poster_id == user.id)
        .group_by(Item.status)
    ).all())

    claims_by_status = dict(session.exec(
        select(Claim.status, func.count(Claim.id))
        .where(Claim.claimant_id == user.id)
        .group_by(Claim.status)
    ).all())

    return {
        "points": user.points,
        "items": {status.value: items_by_status.get(status, 0) for status in ItemStatus},
        "claims": {status.value: claims_by_status.get(status, 0) for status in ClaimStatus},
    }
