from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from eventsfixer.crud import create_event, create_invite, create_rsvp, publish_event
from eventsfixer.email import DeliveryResult, process_queued_emails
from eventsfixer.models import EmailMessage, Event
from eventsfixer.reminders import queue_event_reminders, queue_no_response_reminders
from eventsfixer.utils import utcnow


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)
        return DeliveryResult(message_id=f"test-{len(self.sent)}")


NOW = datetime(2030, 3, 10, 9, 0)


@pytest.fixture()
def make_event(session, organizer):
    user, _ = organizer

    def _make(title, start_time, publish=True, **extra):
        event = create_event(
            session, owner=user, title=title, start_time=start_time, **extra
        )
        if publish:
            publish_event(session, event, user.id)
        session.commit()
        return event

    return _make


def _reminders(session, template="reminder"):
    return session.query(EmailMessage).filter_by(template=template).all()


def test_confirmed_guests_of_tomorrows_events_get_one_reminder(session, make_event):
    tomorrow = make_event("Harvest Supper", datetime(2030, 3, 11, 18, 0))
    later = make_event("Spring Picnic", datetime(2030, 3, 13, 12, 0))
    hidden = make_event("Draft Party", datetime(2030, 3, 11, 20, 0), publish=False)

    create_rsvp(session, event=tomorrow, name="Ana", email="ana@example.com")
    create_rsvp(
        session, event=tomorrow, name="Ben", email="ben@example.com", attendance_status="no"
    )
    create_rsvp(session, event=tomorrow, name="Cal")
    create_rsvp(session, event=later, name="Dot", email="dot@example.com")
    session.commit()
    assert hidden.published_at is None

    assert queue_event_reminders(now=NOW) == 1
    assert queue_event_reminders(now=NOW) == 0

    reminders = _reminders(session)
    assert [r.recipient for r in reminders] == ["ana@example.com"]
    assert reminders[0].event_id == tomorrow.id
    assert reminders[0].subject == "Reminder: Harvest Supper is coming up"
    assert reminders[0].variables["guest_name"] == "Ana"


def test_unanswered_invites_get_a_single_nudge(session, make_event):
    start = utcnow().replace(microsecond=0) + timedelta(days=14)
    event = make_event("Garden Party", start)
    create_invite(session, event=event, email="quiet@example.com", name="Quinn")
    answered = create_invite(session, event=event, email="keen@example.com")
    session.commit()
    assert process_queued_emails(sender=RecordingSender()) == 2

    event = session.get(Event, event.id)
    create_rsvp(session, event=event, name="Keen", email="keen@example.com")
    session.commit()

    assert queue_no_response_reminders(now=utcnow() + timedelta(days=1)) == 0
    later = utcnow() + timedelta(days=4)
    assert queue_no_response_reminders(now=later) == 1
    assert queue_no_response_reminders(now=later) == 0

    nudges = _reminders(session, "no_response")
    assert [n.recipient for n in nudges] == ["quiet@example.com"]
    invite_email = (
        session.query(EmailMessage)
        .filter_by(template="invite", recipient="quiet@example.com")
        .one()
    )
    assert nudges[0].variables["rsvp_url"] == invite_email.variables["rsvp_url"]
    assert nudges[0].invite_id != answered.id


def test_no_nudges_after_deadline(session, make_event):
    start = utcnow().replace(microsecond=0) + timedelta(days=14)
    event = make_event(
        "Gala", start, rsvp_deadline=utcnow().replace(microsecond=0) + timedelta(days=2)
    )
    create_invite(session, event=event, email="late@example.com")
    session.commit()
    process_queued_emails(sender=RecordingSender())

    assert queue_no_response_reminders(now=utcnow() + timedelta(days=4)) == 0
