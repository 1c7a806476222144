"""
Item registry: owns item records and their status sub-machine.

Posters edit the descriptive fields of their own active items. Only admins
(directly) and the claim engine (on approval) change an item's status.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import FOUND_ITEM_POINTS, MAX_ITEM_IMAGES
from app.models.claim import Claim
from app.models.item import Item, ItemStatus, ItemType
from app.models.message import Message
from app.models.user import REPORTER_ROLES, User, UserRole
from app.services import notifier
from app.services.errors import InternalError, InvalidState, LostFoundError, NotFound, PermissionDenied
from app.services.points import add_points
from app.services.transitions import OPEN_CLAIM_STATUSES, check_item_handover, check_item_transition
from app.utils import s3_service
from app.utils.form_validator import ValidatedCreateItem, ValidatedUpdateItem


logger = logging.getLogger(__name__)


def is_admin(user: User) -> bool:
    return user.role == UserRole.admin


def get_item_or_404(session: Session, item_id: uuid.UUID) -> Item:
    item = session.get(Item, item_id)
    if not item:
        raise NotFound("Item not found")
    return item


def build_qr_payload(item: Item) -> str:
    # non-authoritative; the client renders it as a QR code
    return json.dumps({
        "id": str(item.id) if item.id else "",
        "title": item.title,
        "location": item.location,
        "date": (item.date_lost or item.date_found).isoformat(),
    })


def create_item(
    session: Session,
    poster: User,
    form: ValidatedCreateItem,
    images: List[Tuple[bytes, str]],
) -> Item:
    if poster.role not in REPORTER_ROLES:
        raise PermissionDenied("Only students, staff and teachers can report items")

    if len(images) > MAX_ITEM_IMAGES:
        raise InvalidState(f"At most {MAX_ITEM_IMAGES} images are allowed")

    # nothing is stored unless every image is acceptable
    for data, _ in images:
        s3_service.validate_image(data)

    image_keys = []
    try:
        for data, filename in images:
            image_keys.append(s3_service.upload_image(data, filename, folder="items"))

        item = _insert_item(session, poster, form, image_keys)
    except LostFoundError:
        for key in image_keys:
            s3_service.delete_s3_object(key)
        raise

    logger.info("Item %s reported by user %s", item.id, poster.id)

    if item.item_type == ItemType.found:
        try:
            add_points(session, poster.id, FOUND_ITEM_POINTS)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to award found-item points to user %s", poster.id)

        session.refresh(item)

    return item


def _insert_item(session: Session, poster: User, form: ValidatedCreateItem, image_keys: List[str]) -> Item:
    item = Item(
        poster_id=poster.id,
        title=form.title,
        description=form.description,
        category=form.category,
        location=form.location,
        date_lost=form.date_lost,
        date_found=form.date_found,
        images=image_keys,
    )

    try:
        session.add(item)
        session.commit()
        session.refresh(item)

        # regenerate now that the id is known
        item.qr_code = build_qr_payload(item)
        session.add(item)
        session.commit()
        session.refresh(item)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create item for user %s", poster.id)
        raise InternalError("Failed to create item")

    return item


def update_item(session: Session, actor: User, item_id: uuid.UUID, patch: ValidatedUpdateItem) -> Item:
    item = get_item_or_404(session, item_id)

    if item.poster_id != actor.id:
        raise PermissionDenied("Unauthorized to edit this item")

    if item.status != ItemStatus.active:
        raise InvalidState("Only active items can be edited")

    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(item, field, value)

    item.updated_at = datetime.now(timezone.utc)

    try:
        session.add(item)
        session.commit()
        session.refresh(item)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to update item %s", item_id)
        raise InternalError("Failed to update item")

    return item


def mark_claimed(session: Session, item_id: uuid.UUID, claimant_id: int):
    """Move an item to claimed on behalf of an approved claim.

    Re-running it for the same claimant is a no-op, which keeps the approval
    effects repairable. Does not commit.
    """
    item = get_item_or_404(session, item_id)
    check_item_handover(item.status, item.claimed_by, claimant_id)

    # conditional so a concurrent handover to someone else still loses
    result = session.execute(
        update(Item)
        .where(Item.id == item_id)
        .where(or_(
            Item.status == ItemStatus.active,
            (Item.status == ItemStatus.claimed) & (Item.claimed_by == claimant_id),
        ))
        .values(
            status=ItemStatus.claimed,
            claimed_by=claimant_id,
            updated_at=datetime.now(timezone.utc),
        )
    )

    if result.rowcount == 0:
        raise InvalidState("Item is no longer available for claiming")


def set_item_status(
    session: Session,
    admin: User,
    item_id: uuid.UUID,
    status: ItemStatus,
    admin_notes: Optional[str] = None,
) -> Item:
    if not is_admin(admin):
        raise PermissionDenied("Admin access required")

    item = get_item_or_404(session, item_id)
    check_item_transition(item.status, status, admin=True)

    if status != item.status:
        item.status = status
        if status != ItemStatus.claimed:
            item.claimed_by = None
        item.updated_at = datetime.now(timezone.utc)

        try:
            session.add(item)
            session.commit()
            session.refresh(item)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to update status of item %s", item_id)
            raise InternalError("Failed to update item status")

        logger.info("Admin %s set item %s to %s", admin.id, item.id, status.value)

        if status == ItemStatus.archived:
            notifier.notify(session, notifier.Event.item_archived, item=item, admin_notes=admin_notes)
            session.refresh(item)

    return item


def _delete_dependents(session: Session, item_id: uuid.UUID) -> List[str]:
    """Remove the claims and messages of an item. Returns blob keys to clean up."""
    claims = session.exec(select(Claim).where(Claim.item_id == item_id)).all()
    claim_ids = [claim.id for claim in claims]
    proof_keys = [claim.proof_image for claim in claims if claim.proof_image]

    message_filter = Message.item_id == item_id
    if claim_ids:
        message_filter = or_(message_filter, Message.claim_id.in_(claim_ids))

    session.execute(delete(Message).where(message_filter))
    session.execute(delete(Claim).where(Claim.item_id == item_id))

    return proof_keys


def delete_item(session: Session, actor: User, item_id: uuid.UUID):
    item = get_item_or_404(session, item_id)
    admin = is_admin(actor)

    if not admin:
        if item.poster_id != actor.id:
            raise PermissionDenied("Unauthorized to delete this item")

        if item.status == ItemStatus.claimed:
            raise InvalidState("Claimed items cannot be deleted")

        open_claim = session.exec(
            select(Claim.id)
            .where(Claim.item_id == item.id)
            .where(Claim.status.in_(OPEN_CLAIM_STATUSES))
        ).first()

        if open_claim:
            raise InvalidState("Item has open claims and cannot be deleted")

    poster_id, title, image_keys = item.poster_id, item.title, list(item.images or [])

    try:
        blob_keys = image_keys + _delete_dependents(session, item.id)
        session.delete(item)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to delete item %s", item_id)
        raise InternalError("Failed to delete item")

    logger.info("Item %s deleted by user %s", item_id, actor.id)

    for key in blob_keys:
        s3_service.delete_s3_object(key)

    if admin and actor.id != poster_id:
        notifier.notify(
            session,
            notifier.Event.item_deleted,
            poster_id=poster_id,
            item_id=item_id,
            title=title,
        )


def list_items(
    session: Session,
    status: Optional[str] = "active",
    item_type: str = "all",
    category: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    poster_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Item], int]:
    query = select(Item)

    if status and status != "all":
        query = query.where(Item.status == ItemStatus(status))

    if item_type == ItemType.lost.value:
        query = query.where(Item.date_lost.is_not(None))
    elif item_type == ItemType.found.value:
        query = query.where(Item.date_found.is_not(None))

    if category:
        query = query.where(Item.category == category)

    if location:
        query = query.where(Item.location.ilike(f"%{location}%"))

    if search:
        query = query.where(or_(
            Item.title.ilike(f"%{search}%"),
            Item.description.ilike(f"%{search}%"),
        ))

    if poster_id is not None:
        query = query.where(Item.poster_id == poster_id)

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    items = session.exec(
        query
        .order_by(Item.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return list(items), total
