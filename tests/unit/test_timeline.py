from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

from packages.shared.models import TimelineEventType
from packages.tcm.timeline import build_timeline


def _transition(**overrides):
    fields = dict(
        created_utc=datetime(2025, 1, 1, 8, 0),
        care_manager_user_key=None,
        communication_sent_date=None,
        outreach_date=None,
        outreach_method=None,
        outreach_attempts=0,
        last_outreach_date=None,
        contact_outcome=None,
        follow_up_appt_datetime=None,
        follow_up_provider_key=None,
        is_active=True,
        closed_utc=None,
        close_reason=None,
        closed_by_user_key=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_new_transition_has_only_created_event():
    events = build_timeline(_transition())
    assert [e.event_type for e in events] == [TimelineEventType.CREATED]
    assert events[0].event_id == 1
    assert events[0].description == "Care transition created"


def test_full_history_in_chronological_order():
    ct = _transition(
        care_manager_user_key="cm1",
        communication_sent_date=datetime(2025, 1, 2),
        outreach_date=datetime(2025, 1, 3, 10, 0),
        outreach_method="phone",
        outreach_attempts=2,
        last_outreach_date=datetime(2025, 1, 3, 10, 0),
        contact_outcome="reached",
        follow_up_appt_datetime=datetime(2025, 1, 10),
        follow_up_provider_key=77,
        is_active=False,
        closed_utc=datetime(2025, 1, 12),
        close_reason="resolved",
        closed_by_user_key="u9",
    )
    events = build_timeline(ct)

    assert [e.event_type for e in events] == [
        TimelineEventType.CREATED,
        TimelineEventType.ASSIGNMENT,
        TimelineEventType.COMMUNICATION,
        TimelineEventType.TCM_CONTACT,
        TimelineEventType.OUTREACH,
        TimelineEventType.APPOINTMENT,
        TimelineEventType.CLOSED,
    ]
    assert [e.event_id for e in events] == [1, 2, 3, 4, 5, 6, 7]

    by_type = {e.event_type: e for e in events}
    assert by_type[TimelineEventType.ASSIGNMENT].performed_by == "cm1"
    assert by_type[TimelineEventType.ASSIGNMENT].metadata == {"care_manager_user_key": "cm1"}
    assert by_type[TimelineEventType.TCM_CONTACT].description == "TCM contact made via phone"
    assert by_type[TimelineEventType.OUTREACH].description == "2 outreach attempt(s) - Last: reached"
    assert by_type[TimelineEventType.APPOINTMENT].metadata == {"provider_key": "77"}
    assert by_type[TimelineEventType.CLOSED].description == "Care transition closed: resolved"
    assert by_type[TimelineEventType.CLOSED].performed_by == "u9"


def test_missing_details_use_placeholders():
    ct = _transition(
        outreach_date=datetime(2025, 1, 3),
        outreach_attempts=1,
        last_outreach_date=datetime(2025, 1, 3),
        is_active=False,
        closed_utc=datetime(2025, 1, 4),
    )
    descriptions = [e.description for e in build_timeline(ct)]
    assert "TCM contact made via unknown method" in descriptions
    assert "1 outreach attempt(s) - Last: No outcome recorded" in descriptions
    assert "Care transition closed: No reason provided" in descriptions


def test_event_ids_follow_emission_order_not_time():
    ct = _transition(communication_sent_date=datetime(2024, 12, 30))
    events = build_timeline(ct)
    assert [e.event_type for e in events] == [TimelineEventType.COMMUNICATION, TimelineEventType.CREATED]
    assert [e.event_id for e in events] == [2, 1]


def test_closed_event_requires_inactive_transition():
    ct = _transition(closed_utc=datetime(2025, 1, 4), is_active=True)
    assert TimelineEventType.CLOSED not in [e.event_type for e in build_timeline(ct)]


def test_outreach_event_requires_attempts():
    ct = _transition(last_outreach_date=datetime(2025, 1, 3), outreach_attempts=0)
    assert TimelineEventType.OUTREACH not in [e.event_type for e in build_timeline(ct)]
