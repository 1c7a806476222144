from enum import Enum
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class UserRole(str, Enum):
    student = "student"
    staff = "staff"
    teacher = "teacher"
    admin = "admin"


# Roles allowed to report items, claim them and send messages
REPORTER_ROLES = {UserRole.student, UserRole.staff, UserRole.teacher}


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    name: str
    email: str = Field(index=True, unique=True)
    image: Optional[str] = Field(default=None)

    role: UserRole = Field(default=UserRole.student, index=True)
    points: int = Field(default=0)  # only grows, through award events

    # Profile
    department: Optional[str] = Field(default=None)
    student_id: Optional[str] = Field(default=None)
