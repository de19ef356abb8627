from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from eventsfixer.auth import create_user
from eventsfixer.config_migrations import parse_page_config
from eventsfixer.crud import (
    available_yes_slots,
    clamp_guest_count,
    create_event,
    create_invite,
    create_media_asset,
    create_rsvp,
    delete_event,
    delete_media_asset,
    duplicate_event,
    get_event_by_slug,
    get_invite_by_token,
    list_events_for_owner,
    list_media_assets,
    publish_event,
    unpublish_event,
    update_event,
)
from eventsfixer.errors import (
    ConflictError,
    EventFullError,
    NotFoundError,
    RSVPClosedError,
    ValidationError,
)
from eventsfixer.media import LocalMediaStore
from eventsfixer.models import EmailMessage, Event, Invite
from eventsfixer.versions import count_versions, list_versions, save_page_config
from eventsfixer.utils import hash_token, utcnow

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture()
def store(tmp_path):
    return LocalMediaStore(tmp_path / "media", "/media")


def _make_event(session, owner, **overrides):
    values = {
        "title": "Team Offsite",
        "start_time": utcnow().replace(microsecond=0) + timedelta(days=14),
        "location": "Lakeside Lodge",
    }
    values.update(overrides)
    event = create_event(session, owner=owner, **values)
    session.commit()
    return event


def _published(session, owner, **overrides):
    event = _make_event(session, owner, **overrides)
    publish_event(session, event, owner.id)
    session.commit()
    return event


def test_create_event_assigns_unique_slug_and_default_template(session, organizer):
    user, _ = organizer
    first = _make_event(session, user, title="Café Night")
    second = _make_event(session, user, title="Café Night")
    assert first.slug == "cafe-night"
    assert second.slug == "cafe-night-2"
    assert first.template_id == "wedding_v1"
    assert first.page_config is None
    assert get_event_by_slug(session, "CAFE-NIGHT").id == first.id
    assert {e.id for e in list_events_for_owner(session, user.id)} == {first.id, second.id}


def test_create_event_rejects_unknown_template(session, organizer):
    user, _ = organizer
    with pytest.raises(ValidationError):
        _make_event(session, user, template_id="gala_v9")


def test_update_event_applies_only_given_fields(session, organizer):
    user, _ = organizer
    event = _make_event(session, user, description="Original")
    update_event(session, event, {"title": "  New   Title ", "template_id": "party_v1"})
    assert event.title == "New Title"
    assert event.template_id == "party_v1"
    assert event.description == "Original"
    with pytest.raises(ValidationError):
        update_event(session, event, {"end_time": event.start_time - timedelta(hours=1)})


def test_publish_without_config_records_minimal_version(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    assert event.is_published
    assert event.page_config["hero"]["title"] == "Team Offsite"
    assert count_versions(session, event.id) == 1

    unpublish_event(session, event)
    assert not event.is_published


def test_publish_refuses_unusable_config(session, organizer):
    user, _ = organizer
    event = _make_event(session, user)
    event.page_config = {"schemaVersion": 13}
    session.commit()
    with pytest.raises(ValidationError):
        publish_event(session, event, user.id)
    assert not event.is_published


def test_duplicate_copies_config_but_not_rsvps(session, organizer, page_document):
    user, _ = organizer
    event = _published(session, user, template_id="conference_v1")
    save_page_config(session, event, parse_page_config(page_document()), user.id)
    create_rsvp(session, event=event, name="Guest")
    session.commit()

    copy = duplicate_event(session, event, user)
    session.commit()

    assert copy.title == "Team Offsite (Copy)"
    assert copy.template_id == "conference_v1"
    assert copy.page_config == event.page_config
    assert not copy.is_published
    assert copy.rsvps == []
    assert [v.revision for v in list_versions(session, copy.id)] == [1]


def test_delete_event_removes_media_files(session, organizer, store):
    user, _ = organizer
    event = _make_event(session, user)
    asset = create_media_asset(
        session, event=event, kind="gallery", content_type="image/png", data=PNG, store=store
    )
    session.commit()
    path = store.root / asset.storage_path
    assert path.exists()

    event_id = event.id
    delete_event(session, event, store)
    session.commit()
    assert not path.exists()
    assert session.get(Event, event_id) is None


def test_rsvp_requires_published_event(session, organizer):
    user, _ = organizer
    event = _make_event(session, user)
    with pytest.raises(NotFoundError):
        create_rsvp(session, event=event, name="Early Bird")


def test_rsvp_after_deadline_is_closed(session, organizer):
    user, _ = organizer
    event = _published(session, user, rsvp_deadline=utcnow() - timedelta(minutes=5))
    with pytest.raises(RSVPClosedError):
        create_rsvp(session, event=event, name="Late")


def test_capacity_counts_guests(session, organizer):
    user, _ = organizer
    event = _published(session, user, max_attendees=4)
    create_rsvp(session, event=event, name="Ann", guest_count=2)
    assert available_yes_slots(session, event) == 1

    with pytest.raises(EventFullError):
        create_rsvp(session, event=event, name="Bob", guest_count=1)

    declined = create_rsvp(
        session, event=event, name="Cy", attendance_status="no", guest_count=3
    )
    assert declined.guest_count == 0
    create_rsvp(session, event=event, name="Di")
    assert available_yes_slots(session, event) == 0


def test_rsvp_validates_status_and_clamps_guests(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    with pytest.raises(ValidationError):
        create_rsvp(session, event=event, name="Eve", attendance_status="perhaps")
    rsvp = create_rsvp(session, event=event, name="  Eve ", attendance_status="MAYBE")
    assert rsvp.name == "Eve"
    assert rsvp.attendance_status == "maybe"
    assert clamp_guest_count(99) == 5
    assert clamp_guest_count("x") == 0
    assert clamp_guest_count(-3) == 0


def test_rsvp_with_email_queues_confirmation(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    create_rsvp(session, event=event, name="Fay", email="FAY@example.com", guest_count=1)
    session.commit()

    email = session.query(EmailMessage).one()
    assert email.template == "confirmation"
    assert email.recipient == "fay@example.com"
    assert email.subject == "You're confirmed for Team Offsite!"
    assert email.variables["guest_count"] == 1
    assert email.status == "queued"


def test_invite_queues_email_and_rejects_duplicates(session, organizer):
    user, _ = organizer
    event = _make_event(session, user)
    invite = create_invite(session, event=event, email="Guest@Example.com", name="Gus")
    session.commit()

    email = session.query(EmailMessage).one()
    assert email.invite_id == invite.id
    token = email.variables["rsvp_url"].rsplit("/", 1)[-1]
    assert email.variables["rsvp_url"] == f"http://localhost:8000/invite/{token}"
    assert invite.token_hash == hash_token(token)
    assert invite.status == "pending"

    with pytest.raises(ConflictError) as excinfo:
        create_invite(session, event=event, email="guest@example.com")
    assert "guest@example.com" in excinfo.value.message

    with pytest.raises(ValidationError):
        create_invite(session, event=event, email="not-an-email")


def _invite_token(session, invite):
    email = session.query(EmailMessage).filter_by(invite_id=invite.id).one()
    return email.variables["rsvp_url"].rsplit("/", 1)[-1]


def test_rsvp_through_invite_link_marks_invite_responded(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    invite = create_invite(session, event=event, email="hal@example.com", name="Hal")
    token = _invite_token(session, invite)

    assert get_invite_by_token(session, token).id == invite.id
    rsvp = create_rsvp(session, event=event, name="Hal", invite_token=token)

    assert rsvp.invite_id == invite.id
    assert rsvp.email == "hal@example.com"
    assert invite.status == "responded"
    assert invite.responded_at is not None
    with pytest.raises(ConflictError):
        create_rsvp(session, event=event, name="Hal again", invite_token=token)


def test_rsvp_with_invited_email_closes_invite(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    create_invite(session, event=event, email="g@example.com")
    session.commit()

    rsvp = create_rsvp(session, event=event, name="Gee", email="G@example.com")
    session.commit()

    invite = session.query(Invite).one()
    assert invite.status == "responded"
    assert invite.rsvp.id == rsvp.id


def test_invite_tokens_are_scoped(session, organizer):
    user, _ = organizer
    event = _published(session, user)
    other = _published(session, user, title="Other Party")
    invite = create_invite(session, event=event, email="ivy@example.com")
    token = _invite_token(session, invite)

    with pytest.raises(NotFoundError):
        get_invite_by_token(session, "not-a-token")
    with pytest.raises(NotFoundError):
        create_rsvp(session, event=other, name="Ivy", invite_token=token)

    unpublish_event(session, event)
    with pytest.raises(NotFoundError):
        get_invite_by_token(session, token)


def test_media_upload_limits(session, organizer, store, monkeypatch):
    from eventsfixer import crud

    user, _ = organizer
    event = _make_event(session, user)

    with pytest.raises(ValidationError):
        create_media_asset(
            session, event=event, kind="gallery", content_type="image/gif", data=PNG, store=store
        )
    with pytest.raises(ValidationError):
        create_media_asset(
            session, event=event, kind="avatar", content_type="image/png", data=PNG, store=store
        )
    with pytest.raises(ValidationError):
        create_media_asset(
            session, event=event, kind="gallery", content_type="image/png", data=b"", store=store
        )

    monkeypatch.setattr(
        crud,
        "settings",
        dataclasses.replace(crud.settings, max_upload_bytes=16, max_assets_per_event=1),
    )
    with pytest.raises(ValidationError) as too_big:
        create_media_asset(
            session, event=event, kind="gallery", content_type="image/png", data=PNG, store=store
        )
    assert "File too large" in too_big.value.message

    create_media_asset(
        session, event=event, kind="hero", content_type="image/png", data=b"tiny", store=store
    )
    with pytest.raises(ValidationError) as too_many:
        create_media_asset(
            session, event=event, kind="gallery", content_type="image/png", data=b"tiny", store=store
        )
    assert "Maximum 1 assets per event" in too_many.value.message


def test_delete_media_asset_scoped_to_event(session, organizer, store):
    user, _ = organizer
    event = _make_event(session, user)
    other_user, _ = create_user(session, email="other@example.com")
    other = _make_event(session, other_user, title="Other")
    asset = create_media_asset(
        session, event=event, kind="gallery", content_type="image/jpeg", data=PNG, store=store
    )
    session.commit()

    with pytest.raises(NotFoundError):
        delete_media_asset(session, event=other, asset_id=asset.id, store=store)

    delete_media_asset(session, event=event, asset_id=asset.id, store=store)
    assert list_media_assets(session, event.id) == []
    assert asset.public_url.endswith(".jpg")
