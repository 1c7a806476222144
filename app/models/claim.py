from enum import Enum
from typing import Optional
import uuid
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class ClaimStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Claim(SQLModel, table=True):
    __tablename__ = "claims"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    item_id: uuid.UUID = Field(foreign_key="items.id", index=True)
    claimant_id: int = Field(foreign_key="users.id", index=True)

    status: ClaimStatus = Field(default=ClaimStatus.pending, index=True)

    # Proof supplied by the claimant
    proof_description: str
    proof_image: Optional[str] = Field(default=None)  # blob key

    # Review
    reviewed_by: Optional[int] = Field(default=None, foreign_key="users.id")
    reviewed_at: Optional[datetime] = Field(default=None)
    admin_notes: Optional[str] = Field(default=None)

    # Set together with the point award so the award is applied once
    points_awarded: bool = Field(default=False)

    __table_args__ = (
        # A claimant may hold at most one open (pending or approved) claim per item.
        # Rejected claims are excluded so the claimant can try again.
        Index(
            "uq_claims_open_item_claimant",
            "item_id",
            "claimant_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'approved')"),
            postgresql_where=text("status IN ('pending', 'approved')"),
        ),
    )
