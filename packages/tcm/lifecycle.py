"""
Care transition lifecycle: create, update, assign, classify, close, and the
tenant-scoped reads that back the work queues.

Every mutation returns a CareTransitionResult and never raises. Storage
errors roll the session back and come back as "Error: <detail>".
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.db.models import CareTransition
from packages.shared.models import (
    AssignCareManager,
    CareTransitionAssignment,
    CareTransitionRecord,
    CareTransitionResult,
    CareTransitionStatus,
    CareTransitionSummary,
    CreateCareTransition,
    Priority,
    RiskTier,
    UpdateCareTransition,
)
from packages.shared.utils.timestamps import parse_timestamp, utcnow
from packages.tcm.registry import build_summary, joined_transitions
from packages.tcm.tenancy import TenantScopeError, ensure_tenant, require_tenant_key, tenant_query

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Care transition not found"
DEFAULT_TAKE = 100
MAX_TAKE = 500

_ASSIGNMENT_FIELDS = ("care_manager_user_key", "assigned_to_user_key")

# request text field -> stored datetime column
_TIMESTAMP_FIELDS = {
    "follow_up_appt_datetime_ts": "follow_up_appt_datetime",
    "communication_sent_date_ts": "communication_sent_date",
    "outreach_date_ts": "outreach_date",
    "tcm_schedule1_ts": "tcm_schedule1",
    "tcm_schedule2_ts": "tcm_schedule2",
    "last_outreach_date_ts": "last_outreach_date",
    "next_outreach_date_ts": "next_outreach_date",
}

_PLAIN_UPDATE_FIELDS = (
    "assigned_team",
    "follow_up_provider_key",
    "outreach_method",
    "readmission_risk_score",
    "consent_confirmed",
    "preferred_language",
    "contact_outcome",
    "notes",
)


# ── Shared helpers ──────────────────────────────────────────────────────


def failure(message: str, key: int | None = None) -> CareTransitionResult:
    return CareTransitionResult(success=False, key=key, message=message)


def not_found() -> CareTransitionResult:
    return failure(NOT_FOUND_MESSAGE)


def storage_failure(session: Session, action: str, key: int | None, exc: Exception) -> CareTransitionResult:
    """Roll back and convert an unexpected error into a failed result. Call from an except block."""
    session.rollback()
    logger.exception("Error during %s for care transition %s", action, key)
    return failure(f"Error: {exc}", key)


def find_transition(session: Session, tenant_key: str, key: int) -> CareTransition | None:
    tenant_key = require_tenant_key(tenant_key)
    row = tenant_query(session, CareTransition, tenant_key).filter(
        CareTransition.care_transition_key == key
    ).first()
    return ensure_tenant(row, tenant_key)


def touch(ct: CareTransition, now: datetime | None = None) -> datetime:
    """Stamp last_updated_utc, keeping it strictly increasing across mutations."""
    stamp = now or utcnow()
    previous = ct.last_updated_utc
    if previous is not None and stamp <= previous:
        stamp = previous + timedelta(microseconds=1)
    ct.last_updated_utc = stamp
    return stamp


def sync_active(ct: CareTransition) -> None:
    ct.is_active = ct.status != CareTransitionStatus.CLOSED.value


def page_bounds(skip: int = 0, take: int = DEFAULT_TAKE) -> tuple[int, int]:
    skip = max(skip or 0, 0)
    take = DEFAULT_TAKE if not take or take < 1 else min(take, MAX_TAKE)
    return skip, take


def _enum_value(value):
    return value.value if value is not None else None


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def _queue_order():
    return (
        func.coalesce(
            CareTransition.next_outreach_date,
            CareTransition.tcm_schedule1,
            CareTransition.created_utc,
        ).asc(),
        CareTransition.care_transition_key.asc(),
    )


# ── Mutations ───────────────────────────────────────────────────────────


def create_care_transition(
    session: Session, tenant_key: str, data: CreateCareTransition
) -> CareTransitionResult:
    try:
        tenant_key = require_tenant_key(tenant_key)
        if not data.visit_number.strip():
            return failure("Visit number is required")
        status = data.status or CareTransitionStatus.NEW
        if status == CareTransitionStatus.CLOSED:
            return failure("A care transition cannot be created as closed")

        now = utcnow()
        ct = CareTransition(
            tenant_key=tenant_key,
            encounter_key=data.encounter_key,
            patient_key=data.patient_key,
            hospital_key=data.hospital_key,
            visit_number=data.visit_number.strip(),
            care_manager_user_key=_blank_to_none(data.care_manager_user_key),
            assigned_to_user_key=_blank_to_none(data.assigned_to_user_key),
            assigned_team=_blank_to_none(data.assigned_team),
            follow_up_provider_key=data.follow_up_provider_key,
            outreach_method=data.outreach_method,
            status=status.value,
            priority=_enum_value(data.priority),
            risk_tier=_enum_value(data.risk_tier),
            readmission_risk_score=data.readmission_risk_score,
            consent_confirmed=data.consent_confirmed,
            preferred_language=data.preferred_language,
            outreach_attempts=0,
            notes=data.notes,
            is_active=True,
            created_utc=now,
            last_updated_utc=now,
        )
        for field, column in _TIMESTAMP_FIELDS.items():
            setattr(ct, column, parse_timestamp(getattr(data, field, None)))

        session.add(ct)
        session.flush()
        logger.info(
            "Created care transition %s tenant=%s encounter=%s",
            ct.care_transition_key,
            tenant_key,
            ct.encounter_key,
        )
        return CareTransitionResult(
            success=True,
            key=ct.care_transition_key,
            message="Care transition created successfully",
        )
    except TenantScopeError as exc:
        return failure(str(exc))
    except Exception as exc:
        return storage_failure(session, "create", None, exc)


def update_care_transition(
    session: Session, tenant_key: str, key: int, data: UpdateCareTransition
) -> CareTransitionResult:
    """
    Partial overwrite. The two assignee user keys change only when
    non-empty, other fields whenever provided. Timestamp text is
    normalized; an empty string clears the stored value and unparseable
    text leaves it untouched.
    """
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()

        if data.status is not None:
            if data.status == CareTransitionStatus.CLOSED:
                return failure("Use close to close a care transition", key)
            if ct.status == CareTransitionStatus.CLOSED.value:
                return failure("Cannot reopen a closed care transition", key)
            ct.status = data.status.value

        for field in _ASSIGNMENT_FIELDS:
            value = getattr(data, field)
            if value is not None and value.strip():
                setattr(ct, field, value)

        for field in _PLAIN_UPDATE_FIELDS:
            value = getattr(data, field)
            if value is not None:
                setattr(ct, field, value)

        if data.priority is not None:
            ct.priority = data.priority.value
        if data.risk_tier is not None:
            ct.risk_tier = data.risk_tier.value

        for field, column in _TIMESTAMP_FIELDS.items():
            raw = getattr(data, field)
            if raw is None:
                continue
            if not raw.strip():
                setattr(ct, column, None)
                continue
            parsed = parse_timestamp(raw)
            if parsed is not None:
                setattr(ct, column, parsed)

        sync_active(ct)
        touch(ct)
        session.flush()
        return CareTransitionResult(success=True, key=key, message="Care transition updated successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "update", key, exc)


def assign_care_manager(
    session: Session, tenant_key: str, key: int, data: AssignCareManager
) -> CareTransitionResult:
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()
        ct.care_manager_user_key = _blank_to_none(data.care_manager_user_key)
        ct.assigned_to_user_key = _blank_to_none(data.assigned_to_user_key)
        ct.assigned_team = _blank_to_none(data.assigned_team)
        touch(ct)
        session.flush()
        return CareTransitionResult(success=True, key=key, message="Care manager assigned successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "assign", key, exc)


def update_priority(session: Session, tenant_key: str, key: int, priority: Priority) -> CareTransitionResult:
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()
        ct.priority = Priority(priority).value
        touch(ct)
        session.flush()
        return CareTransitionResult(success=True, key=key, message="Priority updated successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "priority update", key, exc)


def update_risk_tier(session: Session, tenant_key: str, key: int, risk_tier: RiskTier) -> CareTransitionResult:
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()
        ct.risk_tier = RiskTier(risk_tier).value
        touch(ct)
        session.flush()
        return CareTransitionResult(success=True, key=key, message="Risk tier updated successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "risk tier update", key, exc)


def close_care_transition(
    session: Session,
    tenant_key: str,
    key: int,
    reason: str | None = "",
    closed_by: str | None = "",
) -> CareTransitionResult:
    """Close a transition. Closing an already closed one re-stamps closed_utc."""
    try:
        ct = find_transition(session, tenant_key, key)
        if ct is None:
            return not_found()
        ct.status = CareTransitionStatus.CLOSED.value
        sync_active(ct)
        ct.close_reason = _blank_to_none(reason)
        ct.closed_by_user_key = _blank_to_none(closed_by)
        ct.closed_utc = touch(ct)
        session.flush()
        logger.info("Closed care transition %s tenant=%s reason=%r", key, ct.tenant_key, ct.close_reason)
        return CareTransitionResult(success=True, key=key, message="Care transition closed successfully")
    except TenantScopeError as exc:
        return failure(str(exc), key)
    except Exception as exc:
        return storage_failure(session, "close", key, exc)


# ── Reads ───────────────────────────────────────────────────────────────


def get_by_key(session: Session, tenant_key: str, key: int) -> CareTransitionRecord | None:
    try:
        ct = find_transition(session, tenant_key, key)
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error loading care transition %s", key)
        return None
    return CareTransitionRecord.model_validate(ct) if ct is not None else None


def get_by_encounter(session: Session, tenant_key: str, encounter_key: int) -> CareTransitionRecord | None:
    """Most recently updated transition for the encounter."""
    try:
        ct = (
            tenant_query(session, CareTransition, tenant_key)
            .filter(CareTransition.encounter_key == encounter_key)
            .order_by(CareTransition.last_updated_utc.desc(), CareTransition.care_transition_key.desc())
            .first()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error loading care transition for encounter %s", encounter_key)
        return None
    return CareTransitionRecord.model_validate(ct) if ct is not None else None


def list_by_patient(session: Session, tenant_key: str, patient_key: int) -> list[CareTransitionRecord]:
    try:
        rows = (
            tenant_query(session, CareTransition, tenant_key)
            .filter(CareTransition.patient_key == patient_key)
            .order_by(CareTransition.created_utc.desc(), CareTransition.care_transition_key.desc())
            .all()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error listing care transitions for patient %s", patient_key)
        return []
    return [CareTransitionRecord.model_validate(ct) for ct in rows]


def list_by_status(
    session: Session,
    tenant_key: str,
    status: CareTransitionStatus,
    skip: int = 0,
    take: int = DEFAULT_TAKE,
) -> list[CareTransitionRecord]:
    skip, take = page_bounds(skip, take)
    try:
        rows = (
            tenant_query(session, CareTransition, tenant_key)
            .filter(CareTransition.status == CareTransitionStatus(status).value)
            .order_by(*_queue_order())
            .offset(skip)
            .limit(take)
            .all()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error listing care transitions with status %s", status)
        return []
    return [CareTransitionRecord.model_validate(ct) for ct in rows]


def list_active(
    session: Session, tenant_key: str, skip: int = 0, take: int = DEFAULT_TAKE
) -> list[CareTransitionRecord]:
    skip, take = page_bounds(skip, take)
    try:
        rows = (
            tenant_query(session, CareTransition, tenant_key)
            .filter(CareTransition.is_active.is_(True))
            .order_by(*_queue_order())
            .offset(skip)
            .limit(take)
            .all()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error listing active care transitions")
        return []
    return [CareTransitionRecord.model_validate(ct) for ct in rows]


def list_by_tenant(
    session: Session, tenant_key: str, skip: int = 0, take: int = DEFAULT_TAKE
) -> list[CareTransitionSummary]:
    skip, take = page_bounds(skip, take)
    try:
        rows = (
            joined_transitions(session, tenant_key)
            .order_by(CareTransition.created_utc.desc(), CareTransition.care_transition_key.desc())
            .offset(skip)
            .limit(take)
            .all()
        )
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error listing care transitions for tenant %s", tenant_key)
        return []
    return [build_summary(ct, patient, hospital, encounter) for ct, patient, hospital, encounter in rows]


def get_assignment(
    session: Session,
    tenant_key: str,
    key: int,
    assigned_to_user_key: str | None = None,
) -> CareTransitionAssignment | None:
    """Assignment view; None when missing or not assigned to `assigned_to_user_key`."""
    try:
        ct = find_transition(session, tenant_key, key)
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error loading assignment for care transition %s", key)
        return None
    if ct is None:
        return None
    if assigned_to_user_key and ct.assigned_to_user_key != assigned_to_user_key:
        return None
    return CareTransitionAssignment.model_validate(ct)
