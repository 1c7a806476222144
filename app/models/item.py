from enum import Enum
from typing import List, Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import date, datetime, timezone


class ItemStatus(str, Enum):
    active = "active"
    claimed = "claimed"
    archived = "archived"

class ItemType(str, Enum):
    lost = "lost"
    found = "found"

class CategoryType(str, Enum):
    electronics = "electronics"
    accessories = "accessories"
    clothing = "clothing"
    books = "books"
    sports = "sports"
    others = "others"


class Item(SQLModel, table=True):
    __tablename__ = "items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Reporter info (immutable once created)
    poster_id: int = Field(foreign_key="users.id", index=True)

    # Item fields
    title: str
    category: CategoryType = Field(default=CategoryType.others, index=True)
    description: str
    location: str = Field(index=True)

    # exactly one of these is set
    date_lost: Optional[date] = Field(default=None)
    date_found: Optional[date] = Field(default=None)

    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))  # blob keys, ordered
    qr_code: Optional[str] = Field(default=None)

    # Lifecycle
    status: ItemStatus = Field(default=ItemStatus.active, index=True)
    claimed_by: Optional[int] = Field(default=None, foreign_key="users.id")

    @property
    def item_type(self) -> ItemType:
        return ItemType.lost if self.date_lost else ItemType.found
