"""
Outreach logging: the only place outreach_attempts is incremented.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.db.models import CareTransitionNote
from packages.shared.models import (
    CareTransitionNoteRecord,
    CareTransitionResult,
    CareTransitionStatus,
    OutreachAttempt,
)
from packages.shared.utils.timestamps import format_note_timestamp, parse_timestamp, utcnow
from packages.tcm.lifecycle import failure, find_transition, not_found, storage_failure, sync_active, touch
from packages.tcm.tenancy import TenantScopeError, tenant_query

logger = logging.getLogger(__name__)


def format_note_line(stamp, attempt_number: int, text: str) -> str:
    return f"[{format_note_timestamp(stamp)}] Outreach #{attempt_number}: {text}"


def log_outreach(
    session: Session,
    tenant_key: str,
    key: int,
    attempt: OutreachAttempt,
    author_user_key: str | None = None,
) -> CareTransitionResult:
    """
    Record one outreach attempt against an open care transition.

    Any attempt count in the payload is ignored. The status moves to the
    caller's value or InProgress; closing goes through close_care_transition.
    """
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()
        if ct.status == CareTransitionStatus.CLOSED.value:
            return failure("Care transition is closed", key)
        if attempt.status == CareTransitionStatus.CLOSED:
            return failure("Use close to close a care transition", key)

        now = utcnow()
        ct.outreach_attempts = (ct.outreach_attempts or 0) + 1

        attempted_at = None
        if attempt.outreach_date and attempt.outreach_date.strip():
            attempted_at = parse_timestamp(attempt.outreach_date)
        attempted_at = attempted_at or now
        ct.outreach_date = attempted_at
        ct.last_outreach_date = attempted_at

        if attempt.outreach_method and attempt.outreach_method.strip():
            ct.outreach_method = attempt.outreach_method
        if attempt.contact_outcome and attempt.contact_outcome.strip():
            ct.contact_outcome = attempt.contact_outcome
        if attempt.assigned_to_user_key and attempt.assigned_to_user_key.strip():
            ct.assigned_to_user_key = attempt.assigned_to_user_key
        if attempt.next_outreach_date_ts and attempt.next_outreach_date_ts.strip():
            next_date = parse_timestamp(attempt.next_outreach_date_ts)
            if next_date is not None:
                ct.next_outreach_date = next_date

        ct.status = (attempt.status or CareTransitionStatus.IN_PROGRESS).value
        sync_active(ct)

        if attempt.notes and attempt.notes.strip():
            line = format_note_line(now, ct.outreach_attempts, attempt.notes)
            ct.notes = line if not (ct.notes or "").strip() else f"{ct.notes}\n{line}"
            session.add(
                CareTransitionNote(
                    tenant_key=ct.tenant_key,
                    care_transition_key=ct.care_transition_key,
                    attempt_number=ct.outreach_attempts,
                    author_user_key=author_user_key,
                    text=attempt.notes,
                    created_utc=now,
                )
            )

        touch(ct, now)
        session.flush()
        logger.info(
            "Outreach #%s logged for care transition %s tenant=%s method=%s",
            ct.outreach_attempts,
            key,
            ct.tenant_key,
            ct.outreach_method,
        )
        return CareTransitionResult(success=True, key=key, message="Outreach logged successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "outreach", key, exc)


def list_notes(session: Session, tenant_key: str, key: int) -> list[CareTransitionNoteRecord]:
    try:
        rows = (
            tenant_query(session, CareTransitionNote, tenant_key)
            .filter(CareTransitionNote.care_transition_key == key)
            .order_by(CareTransitionNote.note_key.asc())
            .all()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error listing notes for care transition %s", key)
        return []
    return [CareTransitionNoteRecord.model_validate(note) for note in rows]
