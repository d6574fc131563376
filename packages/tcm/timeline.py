"""
Timeline reconstruction from the current care transition snapshot.

Only the latest value of each field is stored, so the timeline shows at
most one event per kind; earlier outreach attempts collapse into a single
"Outreach" entry carrying the running count.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from packages.shared.models import TimelineEvent, TimelineEventType
from packages.tcm.lifecycle import find_transition

logger = logging.getLogger(__name__)


def build_timeline(ct) -> list[TimelineEvent]:
    events: list[TimelineEvent] = []

    def emit(event_type, description, timestamp, performed_by=None, metadata=None):
        events.append(
            TimelineEvent(
                event_id=len(events) + 1,
                event_type=event_type,
                description=description,
                event_timestamp=timestamp,
                performed_by=performed_by,
                metadata=metadata,
            )
        )

    emit(TimelineEventType.CREATED, "Care transition created", ct.created_utc)

    if ct.care_manager_user_key:
        emit(
            TimelineEventType.ASSIGNMENT,
            "Care manager assigned",
            ct.created_utc,
            performed_by=ct.care_manager_user_key,
            metadata={"care_manager_user_key": ct.care_manager_user_key},
        )

    if ct.communication_sent_date is not None:
        emit(TimelineEventType.COMMUNICATION, "Communication sent to patient", ct.communication_sent_date)

    if ct.outreach_date is not None:
        emit(
            TimelineEventType.TCM_CONTACT,
            f"TCM contact made via {ct.outreach_method or 'unknown method'}",
            ct.outreach_date,
            metadata={"contact_method": ct.outreach_method or ""},
        )

    if (ct.outreach_attempts or 0) > 0 and ct.last_outreach_date is not None:
        emit(
            TimelineEventType.OUTREACH,
            f"{ct.outreach_attempts} outreach attempt(s) - Last: {ct.contact_outcome or 'No outcome recorded'}",
            ct.last_outreach_date,
            metadata={
                "outreach_attempts": str(ct.outreach_attempts),
                "contact_outcome": ct.contact_outcome or "",
            },
        )

    if ct.follow_up_appt_datetime is not None:
        emit(
            TimelineEventType.APPOINTMENT,
            "Follow-up appointment scheduled",
            ct.follow_up_appt_datetime,
            metadata={"provider_key": str(ct.follow_up_provider_key) if ct.follow_up_provider_key is not None else ""},
        )

    if not ct.is_active and ct.closed_utc is not None:
        emit(
            TimelineEventType.CLOSED,
            f"Care transition closed: {ct.close_reason or 'No reason provided'}",
            ct.closed_utc,
            performed_by=ct.closed_by_user_key,
            metadata={
                "close_reason": ct.close_reason or "",
                "closed_by_user_key": ct.closed_by_user_key or "",
            },
        )

    # sorted() is stable: equal timestamps keep emission order
    return sorted(events, key=lambda event: event.event_timestamp)


def get_timeline(session: Session, tenant_key: str, key: int) -> list[TimelineEvent]:
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return []
        return build_timeline(ct)
    except Exception:
        logger.exception("Error building timeline for care transition %s", key)
        return []
