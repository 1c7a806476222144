"""
Notification fan-out.

A domain event is turned into one notification record per recipient. The
builders are pure so the recipient mapping can be checked without a
database; ``notify`` persists what they return and never raises, because a
failed notification must not undo or block the operation it accompanies.
"""
import logging
import uuid
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.models.claim import Claim, ClaimStatus
from app.models.item import Item
from app.models.message import Message
from app.models.notification import Notification, NotificationType
from app.models.user import User, UserRole
from app.services.errors import InternalError


logger = logging.getLogger(__name__)


class Event(str, Enum):
    claim_submitted = "ClaimSubmitted"
    claim_decided = "ClaimDecided"
    item_archived = "ItemArchived"
    item_deleted = "ItemDeleted"
    new_message = "NewMessage"


def list_admin_ids(session: Session) -> List[int]:
    return list(session.exec(select(User.id).where(User.role == UserRole.admin)).all())


def build_claim_submitted(claim: Claim, item: Item, admin_ids: Iterable[int]) -> List[Notification]:
    data = {
        "item_id": str(item.id),
        "claim_id": str(claim.id),
        "claimant_id": claim.claimant_id,
    }

    notifications = [
        Notification(
            user_id=item.poster_id,
            type=NotificationType.claim_received,
            title="New claim on your item",
            message=f"Someone has claimed your item '{item.title}'.",
            data=data,
        )
    ]

    # one record per admin so each admin tracks their own read state
    for admin_id in admin_ids:
        notifications.append(Notification(
            user_id=admin_id,
            type=NotificationType.claim_submitted,
            title="New claim to review",
            message=f"A new claim has been submitted for item '{item.title}'.",
            data=data,
        ))

    return notifications


def build_claim_decided(claim: Claim, item: Item) -> List[Notification]:
    approved = claim.status == ClaimStatus.approved
    data = {
        "item_id": str(item.id),
        "claim_id": str(claim.id),
        "status": claim.status.value,
        "reviewed_by": claim.reviewed_by,
    }

    message = f"Your claim for '{item.title}' has been {claim.status.value}."
    if claim.admin_notes:
        message += f" Notes: {claim.admin_notes}"

    notifications = [
        Notification(
            user_id=claim.claimant_id,
            type=NotificationType.claim_approved if approved else NotificationType.claim_rejected,
            title="Claim approved" if approved else "Claim rejected",
            message=message,
            data=data,
        )
    ]

    if approved:
        notifications.append(Notification(
            user_id=item.poster_id,
            type=NotificationType.item_claimed,
            title="Item claimed",
            message=f"Your item '{item.title}' has been claimed.",
            data=data,
        ))

    return notifications


def build_item_archived(item: Item, admin_notes: str = None) -> List[Notification]:
    return [
        Notification(
            user_id=item.poster_id,
            type=NotificationType.item_archived,
            title="Item archived",
            message=f"Your item '{item.title}' has been archived by admin.",
            data={"item_id": str(item.id), "admin_notes": admin_notes},
        )
    ]


def build_item_deleted(poster_id: int, item_id, title: str) -> List[Notification]:
    # plain values, the item row is already gone
    return [
        Notification(
            user_id=poster_id,
            type=NotificationType.item_deleted,
            title="Item deleted",
            message=f"Your item '{title}' has been deleted by admin.",
            data={"item_id": str(item_id)},
        )
    ]


def build_new_message(message: Message, sender: User) -> List[Notification]:
    return [
        Notification(
            user_id=message.receiver_id,
            type=NotificationType.new_message,
            title="New message",
            message=f"You have a new message from {sender.name}.",
            data={
                "message_id": str(message.id),
                "sender_id": sender.id,
                "item_id": str(message.item_id) if message.item_id else None,
                "claim_id": str(message.claim_id) if message.claim_id else None,
            },
        )
    ]


BUILDERS = {
    Event.claim_submitted: build_claim_submitted,
    Event.claim_decided: build_claim_decided,
    Event.item_archived: build_item_archived,
    Event.item_deleted: build_item_deleted,
    Event.new_message: build_new_message,
}


def notify(session: Session, event: Event, **payload) -> List[Notification]:
    """Write the notifications for ``event``.

    Returns the records that were written, or an empty list if the write
    failed. Failures are logged, never raised.
    """
    notifications = BUILDERS[event](**payload)

    try:
        session.add_all(notifications)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to write %d notification(s) for %s", len(notifications), event.value)
        return []

    logger.info("%s: notified %d user(s)", event.value, len(notifications))
    return notifications


def _for_user(query, user_id: int, unread_only: bool = False):
    query = query.where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    return query


def list_for_user(
    session: Session,
    user_id: int,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Notification], int]:
    total = session.exec(
        _for_user(select(func.count(Notification.id)), user_id, unread_only)
    ).one()

    notifications = session.exec(
        _for_user(select(Notification), user_id, unread_only)
        .order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return list(notifications), total


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        _for_user(select(func.count(Notification.id)), user_id, unread_only=True)
    ).one()


def mark_read(session: Session, user_id: int, notification_id: Optional[uuid.UUID] = None) -> int:
    """Mark one notification, or all of the user's unread ones, as read."""
    statement = (
        update(Notification)
        .where(Notification.user_id == user_id)
        .where(Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    if notification_id is not None:
        statement = statement.where(Notification.id == notification_id)

    try:
        result = session.execute(statement)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to mark notifications read for user %s", user_id)
        raise InternalError("Failed to update notifications")

    return result.rowcount
