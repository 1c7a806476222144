from enum import Enum
from typing import Any, Dict
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

class NotificationType(str, Enum):
    claim_received = "claim_received"    # poster: someone claimed your item
    claim_submitted = "claim_submitted"  # admins: new claim to review
    claim_approved = "claim_approved"
    claim_rejected = "claim_rejected"
    item_claimed = "item_claimed"        # poster: your item was handed over
    item_archived = "item_archived"
    item_deleted = "item_deleted"
    new_message = "new_message"

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Ownership
    user_id: int = Field(foreign_key="users.id", index=True)

    # Notification fields
    type: NotificationType = Field(index=True)

    title: str
    message: str

    # ids of the related item / claim / actor; kept as plain values so a
    # notification outlives the records it points at
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    is_read: bool = Field(default=False, index=True)
