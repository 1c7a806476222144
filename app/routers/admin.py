import logging
import uuid
from typing import List, Literal, Optional
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select, func, and_
from pydantic import BaseModel, ConfigDict, Field

from app.db.db import get_session
from app.models.user import User, UserRole
from app.models.item import Item, ItemStatus
from app.models.claim import Claim, ClaimStatus
from app.models.notification import Notification
from app.routers.claims import claim_detail
from app.services import claim_engine, item_registry
from app.utils.auth_helper import require_admin
from app.utils.s3_service import get_all_urls, sign_item

logger = logging.getLogger(__name__)

router = APIRouter()


# Response Models
class OverviewStats(BaseModel):
    total_users: int
    total_items: int
    items_current_month: int
    active_items: int
    claimed_items: int
    archived_items: int
    claims_pending: int
    claims_approved_current_month: int
    claims_rejected_current_month: int


class UserDetail(BaseModel):
    id: int
    public_id: str
    name: str
    email: str
    role: UserRole
    points: int
    created_at: datetime
    items_posted: int
    claims_submitted: int


class ItemStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: ItemStatus
    admin_notes: Optional[str] = Field(default=None, alias="adminNotes", max_length=1000)


class UserRoleRequest(BaseModel):
    role: UserRole


@router.get("/stats", response_model=OverviewStats)
def get_overview_stats(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    """Get overview statistics for the admin dashboard"""
    now = datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total_users = session.exec(select(func.count(User.id))).one()

    # Items by status
    total_items = session.exec(select(func.count(Item.id))).one()

    items_current = session.exec(
        select(func.count(Item.id)).where(Item.created_at >= month_start)
    ).one()

    by_status = dict(session.exec(
        select(Item.status, func.count(Item.id)).group_by(Item.status)
    ).all())

    # Claims this month
    claims_approved = session.exec(
        select(func.count(Claim.id)).where(
            and_(
                Claim.reviewed_at >= month_start,
                Claim.status == ClaimStatus.approved
            )
        )
    ).one()

    claims_rejected = session.exec(
        select(func.count(Claim.id)).where(
            and_(
                Claim.reviewed_at >= month_start,
                Claim.status == ClaimStatus.rejected
            )
        )
    ).one()

    claims_pending = session.exec(
        select(func.count(Claim.id)).where(Claim.status == ClaimStatus.pending)
    ).one()

    return OverviewStats(
        total_users=total_users,
        total_items=total_items,
        items_current_month=items_current,
        active_items=by_status.get(ItemStatus.active, 0),
        claimed_items=by_status.get(ItemStatus.claimed, 0),
        archived_items=by_status.get(ItemStatus.archived, 0),
        claims_pending=claims_pending,
        claims_approved_current_month=claims_approved,
        claims_rejected_current_month=claims_rejected,
    )


@router.get("/items")
def get_items_for_moderation(
    status: Literal["active", "claimed", "archived", "all"] = "all",
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """All items regardless of status"""
    items, total = item_registry.list_items(
        session,
        status=status,
        search=search,
        page=page,
        limit=limit,
    )

    return {
        "items": get_all_urls(items),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.put("/items/{item_id}/status")
def update_item_status(
    item_id: uuid.UUID,
    payload: ItemStatusRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Set an item's status directly, bypassing the claim workflow"""
    item = item_registry.set_item_status(
        session,
        admin,
        item_id,
        payload.status,
        admin_notes=payload.admin_notes,
    )

    return {
        "message": "Item status updated successfully",
        "item": sign_item(item),
    }


@router.delete("/items/{item_id}")
def delete_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Delete an item together with its claims and messages"""
    item_registry.delete_item(session, admin, item_id)

    return {"message": "Item deleted successfully"}


@router.post("/claims/{claim_id}/reconcile")
def reconcile_claim(
    claim_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Re-apply the effects of an approved claim that did not complete"""
    claim = claim_engine.apply_approval_effects(session, admin, claim_id)

    return {
        "message": "Approval effects applied",
        "claim": claim_detail(session, claim),
    }


@router.get("/users", response_model=List[UserDetail])
def get_users_for_management(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    """Get all users with their activity counts"""
    query = select(User).order_by(User.created_at.desc())

    if role:
        query = query.where(User.role == role)

    users = session.exec(query).all()

    user_details = []
    for user in users:
        # Count items posted
        items_count = session.exec(
            select(func.count(Item.id)).where(Item.poster_id == user.id)
        ).one()

        claims_count = session.exec(
            select(func.count(Claim.id)).where(Claim.claimant_id == user.id)
        ).one()

        user_details.append(UserDetail(
            id=user.id,
            public_id=user.public_id,
            name=user.name,
            email=user.email,
            role=user.role,
            points=user.points,
            created_at=user.created_at,
            items_posted=items_count,
            claims_submitted=claims_count,
        ))

    return user_details


@router.put("/users/{user_id}/role")
def update_user_role(
    user_id: int,
    payload: UserRoleRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.id == admin.id and payload.role != UserRole.admin:
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")

    user.role = payload.role

    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info("Admin %s set role of user %s to %s", admin.id, user.id, user.role.value)

    return {
        "ok": True,
        "message": "User role updated successfully"
    }


@router.get("/notifications")
def get_all_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Every notification in the system, newest first"""
    total = session.exec(select(func.count(Notification.id))).one()

    notifications = session.exec(
        select(Notification)
        .order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return {
        "notifications": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }
