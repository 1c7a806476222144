import uuid
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from app.db.db import get_session
from app.models.user import User
from app.services import messaging
from app.utils.auth_helper import get_user, require_reporter


router = APIRouter()


class MessageCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver_id: int = Field(alias="receiverId")
    content: str = Field(min_length=1, max_length=1000)
    item_id: Optional[uuid.UUID] = Field(default=None, alias="itemId")
    claim_id: Optional[uuid.UUID] = Field(default=None, alias="claimId")


@router.get("/conversations")
def get_conversations(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    return messaging.list_conversations(session, user)


@router.get("/conversation/{conversation_id}")
def get_conversation_messages(
    conversation_id: str,
    type: Literal["item", "claim", "direct"],
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    messages, total = messaging.get_conversation(
        session, user, type, conversation_id, page=page, limit=limit
    )

    return {
        "messages": messages,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.post("", status_code=201)
def send_message(
    payload: MessageCreateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_reporter),
):
    message = messaging.send_message(
        session,
        user,
        payload.receiver_id,
        payload.content,
        item_id=payload.item_id,
        claim_id=payload.claim_id,
    )

    return {
        "message": "Message sent successfully",
        "data": message,
    }


@router.put("/conversation/{conversation_id}/read")
def mark_conversation_read(
    conversation_id: str,
    type: Literal["item", "claim", "direct"],
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    updated = messaging.mark_conversation_read(session, user, type, conversation_id)

    return {"message": "Messages marked as read", "updated": updated}


@router.get("/unread-count")
def get_unread_count(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    return {"unread_count": messaging.unread_count(session, user)}
