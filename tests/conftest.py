import io
import os
import uuid
from datetime import date

os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.db.db import get_session
from app.main import app
from app.models.claim import Claim  # noqa: F401
from app.models.item import Item, ItemStatus
from app.models.message import Message  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.user import User, UserRole
from app.utils import s3_service


class FakeS3:
    """Stands in for the boto3 client; records what was stored."""

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.objects[key] = fileobj.read()

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://signed.test/{Params['Key']}?expires={ExpiresIn}"

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        self.deleted.append(Key)


@pytest.fixture(name="s3", autouse=True)
def s3_fixture(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(s3_service, "get_s3", lambda: fake)
    return fake


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session: Session):
    def _make_user(role: UserRole = UserRole.student, name: str = None, points: int = 0) -> User:
        public_id = uuid.uuid4().hex
        user = User(
            public_id=public_id,
            name=name or f"{role.value}-{public_id[:6]}",
            email=f"{public_id}@campus.test",
            role=role,
            points=points,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_item(session: Session):
    def _make_item(poster: User, status: ItemStatus = ItemStatus.active, lost: bool = False, **fields) -> Item:
        item = Item(
            poster_id=poster.id,
            title=fields.pop("title", "Blue backpack"),
            description=fields.pop("description", "Found near the library entrance"),
            location=fields.pop("location", "Main library"),
            date_lost=date(2026, 10, 1) if lost else None,
            date_found=None if lost else date(2026, 10, 1),
            status=status,
            **fields,
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    return _make_item


def auth_headers(user: User) -> dict:
    token = jwt.encode({"sub": user.public_id}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="png_bytes")
def png_bytes_fixture() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(10, 120, 200)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(name="auth")
def auth_fixture():
    return auth_headers
