import json
import uuid
from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.models.claim import Claim, ClaimStatus
from app.models.item import CategoryType, ItemStatus, ItemType
from app.models.message import Message
from app.models.notification import Notification, NotificationType
from app.models.user import UserRole
from app.services import claim_engine, item_registry
from app.services.errors import InternalError, InvalidState, NotFound, PermissionDenied
from app.utils.form_validator import (
    ValidatedCreateItem,
    validate_create_item_form,
    validate_update_item,
)


def found_form(**overrides):
    fields = dict(
        title="Black umbrella",
        description="Folding umbrella left at the bus stop",
        category=CategoryType.accessories,
        location="North gate",
        date_found=date(2026, 10, 12),
    )
    fields.update(overrides)
    return ValidatedCreateItem(**fields)


def test_create_found_item_uploads_images_and_awards_points(session, make_user, png_bytes, s3):
    poster = make_user(UserRole.staff)

    item = item_registry.create_item(session, poster, found_form(), [(png_bytes, "umbrella.png")])

    assert item.status == ItemStatus.active
    assert item.item_type == ItemType.found
    assert len(item.images) == 1
    assert item.images[0].startswith("items/umbrella-")
    assert item.images[0] in s3.objects

    payload = json.loads(item.qr_code)
    assert payload == {
        "id": str(item.id),
        "title": "Black umbrella",
        "location": "North gate",
        "date": "2026-10-12",
    }

    session.refresh(poster)
    assert poster.points == 10


def test_create_lost_item_awards_nothing(session, make_user):
    poster = make_user()

    item = item_registry.create_item(
        session, poster, found_form(date_found=None, date_lost=date(2026, 10, 2)), []
    )

    assert item.item_type == ItemType.lost
    session.refresh(poster)
    assert poster.points == 0


def test_admins_do_not_report_items(session, make_user):
    with pytest.raises(PermissionDenied):
        item_registry.create_item(session, make_user(UserRole.admin), found_form(), [])


def test_non_image_upload_is_refused(session, make_user, s3):
    with pytest.raises(InvalidState):
        item_registry.create_item(session, make_user(), found_form(), [(b"%PDF-1.4", "scan.pdf")])

    assert s3.objects == {}


def test_item_form_requires_exactly_one_date():
    with pytest.raises(HTTPException) as neither:
        validate_create_item_form("Keys", "Ring of three keys", "accessories", "Gym", None, None)

    with pytest.raises(HTTPException) as both:
        validate_create_item_form(
            "Keys", "Ring of three keys", "accessories", "Gym", "2026-10-01", "2026-10-02"
        )

    assert neither.value.status_code == 400
    assert both.value.status_code == 400

    form = validate_create_item_form(
        "  Keys ", "Ring of three keys", "accessories", "Gym", "2026-10-01T08:00:00Z", None
    )
    assert form.title == "Keys"
    assert form.date_lost == date(2026, 10, 1)


def test_update_rejects_status_and_unknown_fields():
    with pytest.raises(HTTPException):
        validate_update_item({"status": "archived"})

    with pytest.raises(HTTPException):
        validate_update_item({"poster_id": 3})


def test_poster_edits_active_item(session, make_user, make_item):
    poster = make_user()
    item = make_item(poster)

    updated = item_registry.update_item(
        session, poster, item.id, validate_update_item({"title": "Navy backpack ", "location": "Library"})
    )

    assert updated.title == "Navy backpack"
    assert updated.location == "Library"
    assert updated.description == "Found near the library entrance"


def test_only_poster_edits(session, make_user, make_item):
    item = make_item(make_user())

    with pytest.raises(PermissionDenied):
        item_registry.update_item(session, make_user(), item.id, validate_update_item({"title": "Mine"}))


@pytest.mark.parametrize("status", [ItemStatus.claimed, ItemStatus.archived])
def test_closed_items_are_not_editable(session, make_user, make_item, status):
    poster = make_user()
    item = make_item(poster, status=status)

    with pytest.raises(InvalidState):
        item_registry.update_item(session, poster, item.id, validate_update_item({"title": "Changed"}))


def test_admin_archives_item_and_poster_is_told(session, make_user, make_item):
    poster, admin = make_user(), make_user(UserRole.admin)
    item = make_item(poster)

    archived = item_registry.set_item_status(
        session, admin, item.id, ItemStatus.archived, admin_notes="Donated"
    )

    assert archived.status == ItemStatus.archived
    notifications = session.exec(select(Notification)).all()
    assert [(n.user_id, n.type) for n in notifications] == [(poster.id, NotificationType.item_archived)]
    assert notifications[0].data["admin_notes"] == "Donated"


def test_admin_override_reopens_claimed_item(session, make_user, make_item):
    poster, claimant, admin = make_user(), make_user(), make_user(UserRole.admin)
    item = make_item(poster, status=ItemStatus.claimed, claimed_by=claimant.id)

    reopened = item_registry.set_item_status(session, admin, item.id, ItemStatus.active)

    assert reopened.status == ItemStatus.active
    assert reopened.claimed_by is None
    # only archiving notifies
    assert session.exec(select(Notification)).all() == []


def test_non_admin_cannot_set_status(session, make_user, make_item):
    poster = make_user()
    item = make_item(poster)

    with pytest.raises(PermissionDenied):
        item_registry.set_item_status(session, poster, item.id, ItemStatus.archived)


def test_set_status_unknown_item(session, make_user):
    with pytest.raises(NotFound):
        item_registry.set_item_status(session, make_user(UserRole.admin), uuid.uuid4(), ItemStatus.archived)


def test_poster_deletes_unclaimed_item(session, make_user, make_item, s3):
    poster = make_user()
    item = make_item(poster, images=["items/a.png"])
    item_id = item.id

    item_registry.delete_item(session, poster, item_id)

    assert item_registry.list_items(session, status="all")[1] == 0
    assert s3.deleted == ["items/a.png"]
    # no notification when posters delete their own items
    assert session.exec(select(Notification)).all() == []

    with pytest.raises(NotFound):
        item_registry.get_item_or_404(session, item_id)


def test_poster_cannot_delete_item_with_open_claim(session, make_user, make_item):
    poster, claimant = make_user(), make_user()
    item = make_item(poster)
    claim_engine.submit_claim(session, claimant, item.id, "mine")

    with pytest.raises(InvalidState):
        item_registry.delete_item(session, poster, item.id)


def test_poster_cannot_delete_claimed_item(session, make_user, make_item):
    poster = make_user()
    item = make_item(poster, status=ItemStatus.claimed)

    with pytest.raises(InvalidState):
        item_registry.delete_item(session, poster, item.id)


def test_stranger_cannot_delete(session, make_user, make_item):
    item = make_item(make_user())

    with pytest.raises(PermissionDenied):
        item_registry.delete_item(session, make_user(), item.id)


def test_admin_delete_removes_claims_and_messages(session, make_user, make_item, s3):
    poster, claimant, admin = make_user(), make_user(), make_user(UserRole.admin)
    item = make_item(poster)
    claim = claim_engine.submit_claim(session, claimant, item.id, "mine", proof_image="proofs/p.png")
    session.add(Message(sender_id=claimant.id, receiver_id=poster.id, item_id=item.id, content="hi"))
    session.add(Message(sender_id=poster.id, receiver_id=claimant.id, claim_id=claim.id, content="hello"))
    session.commit()
    item_id = item.id

    item_registry.delete_item(session, admin, item_id)

    assert session.exec(select(Claim)).all() == []
    assert session.exec(select(Message)).all() == []
    assert "proofs/p.png" in s3.deleted

    deleted = session.exec(
        select(Notification).where(Notification.type == NotificationType.item_deleted)
    ).all()
    assert [n.user_id for n in deleted] == [poster.id]
    assert deleted[0].data == {"item_id": str(item_id)}


def test_list_items_filters(session, make_user, make_item):
    poster = make_user()
    make_item(poster, title="Red scarf", lost=True)
    make_item(poster, title="Laptop charger", location="Lab 3")
    make_item(poster, title="Old jacket", status=ItemStatus.archived)

    active, total = item_registry.list_items(session)
    assert total == 2

    lost, _ = item_registry.list_items(session, item_type="lost")
    assert [i.title for i in lost] == ["Red scarf"]

    found, _ = item_registry.list_items(session, item_type="found", status="all")
    assert {i.title for i in found} == {"Laptop charger", "Old jacket"}

    searched, _ = item_registry.list_items(session, search="charger")
    assert [i.title for i in searched] == ["Laptop charger"]

    located, _ = item_registry.list_items(session, location="lab")
    assert [i.title for i in located] == ["Laptop charger"]

    page, total = item_registry.list_items(session, status="all", page=2, limit=2)
    assert total == 3
    assert len(page) == 1


def test_claim_status_untouched_by_archive(session, make_user, make_item):
    poster, claimant, admin = make_user(), make_user(), make_user(UserRole.admin)
    item = make_item(poster)
    claim = claim_engine.submit_claim(session, claimant, item.id, "mine")

    item_registry.set_item_status(session, admin, item.id, ItemStatus.archived)

    session.refresh(claim)
    assert claim.status == ClaimStatus.pending


def test_returned_item_keeps_its_fields_after_side_effects(session, make_user, make_item):
    poster, admin = make_user(), make_user(UserRole.admin)

    found = item_registry.create_item(session, poster, found_form(), [])
    assert found.model_dump()["status"] == ItemStatus.active

    archived = item_registry.set_item_status(session, admin, make_item(poster).id, ItemStatus.archived)
    assert archived.model_dump()["status"] == ItemStatus.archived


def test_no_image_is_stored_when_a_later_one_is_refused(session, make_user, png_bytes, s3):
    with pytest.raises(InvalidState):
        item_registry.create_item(
            session, make_user(), found_form(), [(png_bytes, "a.png"), (b"%PDF-1.4", "b.pdf")]
        )

    assert s3.objects == {}
    assert s3.deleted == []


def test_uploads_are_removed_when_the_item_write_fails(session, make_user, png_bytes, s3, monkeypatch):
    poster = make_user()

    def broken_commit():
        raise OperationalError("INSERT INTO items", {}, Exception("disk full"))

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(InternalError):
        item_registry.create_item(session, poster, found_form(), [(png_bytes, "a.png")])

    assert s3.objects == {}
    assert len(s3.deleted) == 1
    assert s3.deleted[0].startswith("items/a-")


@pytest.mark.parametrize("status, claimed_by_other", [
    (ItemStatus.archived, False),
    (ItemStatus.claimed, True),
])
def test_mark_claimed_follows_item_transitions(session, make_user, make_item, status, claimed_by_other):
    poster, claimant, other = make_user(), make_user(), make_user()
    item = make_item(poster, status=status, claimed_by=other.id if claimed_by_other else None)

    with pytest.raises(InvalidState):
        item_registry.mark_claimed(session, item.id, claimant.id)


def test_mark_claimed_again_for_same_claimant(session, make_user, make_item):
    poster, claimant = make_user(), make_user()
    item = make_item(poster)

    item_registry.mark_claimed(session, item.id, claimant.id)
    session.commit()
    item_registry.mark_claimed(session, item.id, claimant.id)
    session.commit()

    session.refresh(item)
    assert item.status == ItemStatus.claimed
    assert item.claimed_by == claimant.id
