import uuid
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.db.db import get_session
from app.models.notification import Notification
from app.models.user import User
from app.services import notifier
from app.services.errors import NotFound
from app.utils.auth_helper import get_user


router = APIRouter()


@router.get("")
def get_my_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    notifications, total = notifier.list_for_user(
        session, user.id, unread_only=unread_only, page=page, limit=limit
    )

    return {
        "notifications": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/count")
def get_unread_notifications_count(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    return {"count": notifier.unread_count(session, user.id)}


@router.post("/{notification_id}/mark-read")
def mark_notification_read(
    notification_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    if not notifier.mark_read(session, user.id, notification_id):
        # either not the user's or already read
        notification = session.get(Notification, notification_id)
        if not notification or notification.user_id != user.id:
            raise NotFound("Notification not found")

    return {"ok": True}


@router.post("/mark-all-read")
def mark_all_notifications_read(
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    updated = notifier.mark_read(session, user.id)

    return {"ok": True, "updated": updated}
