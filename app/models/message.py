from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    sender_id: int = Field(foreign_key="users.id", index=True)
    receiver_id: int = Field(foreign_key="users.id", index=True)

    # Optional conversation context
    item_id: Optional[uuid.UUID] = Field(default=None, foreign_key="items.id", index=True)
    claim_id: Optional[uuid.UUID] = Field(default=None, foreign_key="claims.id", index=True)

    content: str
    is_read: bool = Field(default=False)
