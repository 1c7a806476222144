import uuid
from typing import Literal, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from app.db.db import get_session
from app.models.claim import Claim, ClaimStatus
from app.models.item import Item
from app.models.user import User
from app.services import claim_engine
from app.services.errors import LostFoundError
from app.utils.auth_helper import get_user, require_admin, require_reporter
from app.utils.form_validator import validate_create_claim_form
from app.utils.s3_service import delete_s3_object, generate_signed_url, upload_image

router = APIRouter()


def user_summary(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None

    return {
        "id": user.id,
        "public_id": user.public_id,
        "name": user.name,
        "role": user.role,
    }


def claim_detail(session: Session, claim: Claim) -> dict:
    """Claim with item, claimant and reviewer resolved for display."""
    data = claim.model_dump(exclude={"points_awarded"})
    data["proof_image"] = generate_signed_url(claim.proof_image) if claim.proof_image else None

    item = session.get(Item, claim.item_id)
    if item:
        data["item"] = {
            "id": str(item.id),
            "title": item.title,
            "description": item.description,
            "location": item.location,
            "status": item.status,
            "poster": user_summary(session.get(User, item.poster_id)),
        }

    claimant = session.get(User, claim.claimant_id)
    data["claimant"] = user_summary(claimant)
    if claimant:
        data["claimant"]["email"] = claimant.email

    data["reviewer"] = user_summary(session.get(User, claim.reviewed_by)) if claim.reviewed_by else None

    return data


@router.get("")
def get_claims(
    status: Optional[ClaimStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    """All claims for admins, own claims for everyone else."""
    claims, total = claim_engine.list_claims(session, user, status=status, page=page, limit=limit)

    return {
        "claims": [claim_detail(session, claim) for claim in claims],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/admin/statistics")
def get_claim_statistics(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return claim_engine.claim_statistics(session)


@router.get("/{claim_id}")
def get_claim(
    claim_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_user),
):
    claim = claim_engine.get_claim(session, user, claim_id)
    return claim_detail(session, claim)


@router.post("", status_code=201)
async def create_claim(
    item_id: uuid.UUID = Form(..., alias="itemId"),
    proof_description: str = Form(..., alias="proofDescription"),
    proof_image: Optional[UploadFile] = File(None, alias="proofImage"),
    session: Session = Depends(get_session),
    user: User = Depends(require_reporter),
):
    form = validate_create_claim_form(proof_description)

    proof_key = None
    if proof_image is not None and proof_image.filename:
        raw_bytes = await proof_image.read()
        proof_key = upload_image(raw_bytes, proof_image.filename, folder="proofs")

    try:
        claim = claim_engine.submit_claim(
            session,
            user,
            item_id,
            form.proof_description,
            proof_image=proof_key,
        )
    except LostFoundError:
        # the claim was refused, drop the proof we stored for it
        if proof_key:
            delete_s3_object(proof_key)
        raise

    return {
        "message": "Claim submitted successfully",
        "claim": claim_detail(session, claim),
    }


class ClaimDecisionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["approved", "rejected"]
    admin_notes: Optional[str] = Field(default=None, alias="adminNotes", max_length=1000)


@router.put("/{claim_id}/status")
def update_claim_status(
    claim_id: uuid.UUID,
    payload: ClaimDecisionRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    notes = payload.admin_notes.strip() if payload.admin_notes else None

    claim = claim_engine.decide_claim(
        session,
        admin,
        claim_id,
        ClaimStatus(payload.status),
        admin_notes=notes or None,
    )

    return {
        "message": f"Claim {payload.status} successfully",
        "claim": claim_detail(session, claim),
    }
