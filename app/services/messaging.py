import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.models.claim import Claim
from app.models.item import Item
from app.models.message import Message
from app.models.user import REPORTER_ROLES, User
from app.services import notifier
from app.services.errors import InternalError, InvalidState, NotFound, PermissionDenied


logger = logging.getLogger(__name__)


def send_message(
    session: Session,
    sender: User,
    receiver_id: int,
    content: str,
    item_id: Optional[uuid.UUID] = None,
    claim_id: Optional[uuid.UUID] = None,
) -> Message:
    if sender.role not in REPORTER_ROLES:
        raise PermissionDenied("Only students, staff and teachers can send messages")

    if receiver_id == sender.id:
        raise InvalidState("You cannot message yourself")

    if not session.get(User, receiver_id):
        raise NotFound("Receiver not found")

    if item_id and not session.get(Item, item_id):
        raise NotFound("Item not found")

    if claim_id and not session.get(Claim, claim_id):
        raise NotFound("Claim not found")

    message = Message(
        sender_id=sender.id,
        receiver_id=receiver_id,
        item_id=item_id,
        claim_id=claim_id,
        content=content.strip(),
    )

    try:
        session.add(message)
        session.commit()
        session.refresh(message)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to send message from user %s", sender.id)
        raise InternalError("Failed to send message")

    notifier.notify(session, notifier.Event.new_message, message=message, sender=sender)
    session.refresh(message)

    return message


def _involves(user_id: int):
    return or_(Message.sender_id == user_id, Message.receiver_id == user_id)


def _conversation_filter(query, kind: str, conversation_id: str):
    try:
        if kind == "item":
            return query.where(Message.item_id == uuid.UUID(conversation_id))
        if kind == "claim":
            return query.where(Message.claim_id == uuid.UUID(conversation_id))

        # direct conversations are keyed by the other user's id
        other_id = int(conversation_id)
    except ValueError:
        raise InvalidState("Invalid conversation id")

    return query.where(
        Message.item_id.is_(None),
        Message.claim_id.is_(None),
        or_(Message.sender_id == other_id, Message.receiver_id == other_id),
    )


def list_conversations(session: Session, user: User) -> List[dict]:
    messages = session.exec(
        select(Message)
        .where(_involves(user.id))
        .order_by(Message.created_at.desc())
    ).all()

    conversations = {}

    # newest first, so the first message seen per key is the latest one
    for message in messages:
        other_id = message.receiver_id if message.sender_id == user.id else message.sender_id

        if message.item_id:
            key, kind = str(message.item_id), "item"
        elif message.claim_id:
            key, kind = str(message.claim_id), "claim"
        else:
            key, kind = str(other_id), "direct"

        if key not in conversations:
            conversations[key] = {
                "id": key,
                "type": kind,
                "other_user_id": other_id,
                "last_message": message,
                "unread_count": 0,
            }

        if not message.is_read and message.receiver_id == user.id:
            conversations[key]["unread_count"] += 1

    return list(conversations.values())


def get_conversation(
    session: Session,
    user: User,
    kind: str,
    conversation_id: str,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[Message], int]:
    query = _conversation_filter(
        select(Message).where(_involves(user.id)),
        kind,
        conversation_id,
    )

    total = session.exec(select(func.count()).select_from(query.subquery())).one()

    messages = list(session.exec(
        query
        .order_by(Message.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all())

    unread_ids = [m.id for m in messages if not m.is_read and m.receiver_id == user.id]
    if unread_ids:
        _mark_read(session, Message.id.in_(unread_ids))

    # chronological order for display
    messages.reverse()
    return messages, total


def _mark_read(session: Session, *criteria) -> int:
    try:
        result = session.execute(
            update(Message)
            .where(*criteria)
            .values(is_read=True)
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to mark messages read")
        raise InternalError("Failed to mark messages as read")

    return result.rowcount


def mark_conversation_read(session: Session, user: User, kind: str, conversation_id: str) -> int:
    query = _conversation_filter(
        select(Message.id).where(Message.receiver_id == user.id, Message.is_read == False),  # noqa: E712
        kind,
        conversation_id,
    )
    ids = list(session.exec(query).all())
    if not ids:
        return 0

    return _mark_read(session, Message.id.in_(ids))


def unread_count(session: Session, user: User) -> int:
    return session.exec(
        select(func.count(Message.id))
        .where(Message.receiver_id == user.id)
        .where(Message.is_read == False)  # noqa: E712
    ).one()
