import uuid
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlmodel import Session, select

from app.db.db import get_session
from app.models.claim import Claim
from app.models.item import CategoryType
from app.models.user import User
from app.routers.claims import user_summary
from app.services import item_registry
from app.services.errors import PermissionDenied
from app.services.transitions import OPEN_CLAIM_STATUSES
from app.utils.auth_helper import get_user, require_reporter
from app.utils.form_validator import validate_create_item_form, validate_update_item
from app.utils.s3_service import get_all_urls, sign_item


router = APIRouter()


@router.post("", status_code=201)
async def add_item(
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    location: str = Form(...),
    date_lost: Optional[str] = Form(None, alias="dateLost"),
    date_found: Optional[str] = Form(None, alias="dateFound"),
    images: List[UploadFile] = File(default=[]),
    session: Session = Depends(get_session),
    user: User = Depends(require_reporter),
):
    form = validate_create_item_form(
        title=title,
        description=description,
        category=category,
        location=location,
        date_lost=date_lost,
        date_found=date_found,
    )

    # read images into memory; the registry uploads them
    uploads = []
    for image in images:
        if image.filename:
            uploads.append((await image.read(), image.filename))

    item = item_registry.create_item(session, user, form, uploads)

    return {
        "message": "Item created successfully",
        "item": sign_item(item),
    }


@router.get("")
async def get_all_items(
    status: Literal["active", "claimed", "archived", "all"] = "active",
    type: Literal["lost", "found", "all"] = "all",
    category: Optional[CategoryType] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    items, total = item_registry.list_items(
        session,
        status=status,
        item_type=type,
        category=category,
        location=location,
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


@router.get("/{item_id}")
async def get_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    item = item_registry.get_item_or_404(session, item_id)

    # check for existing claim
    claim_status = "none"

    claim = session.exec(
        select(Claim)
        .where(Claim.item_id == item.id)
        .where(Claim.status.in_(OPEN_CLAIM_STATUSES)) # don't send rejection info
    ).first()

    if claim:
        claim_status = claim.status

    return {
        "item": sign_item(item),
        "poster": user_summary(session.get(User, item.poster_id)),
        "claimed_by": user_summary(session.get(User, item.claimed_by)) if item.claimed_by else None,
        "claim_status": claim_status,
    }


@router.put("/{item_id}")
async def update_item(
    item_id: uuid.UUID,
    updates: dict,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    if "status" in updates:
        raise PermissionDenied("Item status can only be changed by an admin")

    patch = validate_update_item(updates)
    item = item_registry.update_item(session, user, item_id, patch)

    return {
        "message": "Item updated successfully",
        "item": sign_item(item),
    }


@router.delete("/{item_id}")
async def delete_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    item_registry.delete_item(session, user, item_id)

    return {"message": "Item deleted successfully"}


@router.get("/categories/list")
async def get_categories(user: User = Depends(get_user)):
    return [category.value for category in CategoryType]
