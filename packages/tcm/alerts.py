"""
Overdue and alert classification for the care management work queues.

The classifiers are pure functions over already-loaded rows so they can be
evaluated against any clock. Rows are (care transition, patient, hospital,
encounter) tuples as produced by `registry.joined_transitions`; the last
three may be None.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from packages.db.models import CareTransition, Encounter, Patient
from packages.shared.models import (
    AlertSummary,
    AlertType,
    CareTransitionStatus,
    OverdueAlert,
    OverdueTcmEncounter,
    TcmSchedule,
    WorkloadSummary,
)
from packages.shared.utils.timestamps import utcnow
from packages.tcm.compliance import TCM_CONTACT_WINDOW_DAYS, TCM_FOLLOW_UP_WINDOW_DAYS
from packages.tcm.registry import joined_transitions, patient_name
from packages.tcm.tenancy import tenant_query

logger = logging.getLogger(__name__)

READMISSION_LOOKBACK_DAYS = 30
READMITTED_VISIT_STATUSES = ("READMITTED", "R")
_ALERT_DATE_FORMAT = "%b %d, %Y"
FOLLOW_UP_DUE_FROM_DAYS = 7
HIGH_RISK_DISCHARGE_WINDOW = timedelta(hours=48)


def days_between(earlier: datetime, now: datetime) -> int:
    """Whole days elapsed from `earlier` to `now`, floored."""
    return (now - earlier).days


def _is_open(ct) -> bool:
    return ct.status != CareTransitionStatus.CLOSED.value


def _location(hospital, encounter) -> Optional[str]:
    if hospital is not None:
        return f"{hospital.hospital_name}, {hospital.city}" if hospital.city else hospital.hospital_name
    return encounter.location if encounter is not None else None


def is_readmission(encounter) -> bool:
    return (encounter.visit_status or "").strip().upper() in READMITTED_VISIT_STATUSES


# ── Pure classifiers ────────────────────────────────────────────────────


def overdue_outreach(rows: Iterable[tuple], now: datetime) -> list[OverdueAlert]:
    alerts = []
    for ct, patient, _hospital, _encounter in rows:
        due = ct.next_outreach_date
        if due is None or due >= now or not _is_open(ct):
            continue
        alerts.append(
            OverdueAlert(
                alert_id=f"{AlertType.OUTREACH.value}-{ct.care_transition_key}",
                alert_type=AlertType.OUTREACH,
                patient_name=patient_name(patient, ct.patient_key),
                days_overdue=days_between(due, now),
                details=f"Outreach was due {due.strftime(_ALERT_DATE_FORMAT)}",
                care_transition_key=ct.care_transition_key,
                encounter_key=ct.encounter_key,
            )
        )
    return alerts


def overdue_schedule(rows: Iterable[tuple], now: datetime, which: TcmSchedule | int) -> list[OverdueTcmEncounter]:
    """Open transitions whose TCM schedule `which` (1 or 2) is in the past, latest deadline first."""
    column = "tcm_schedule1" if TcmSchedule(which) == TcmSchedule.CONTACT else "tcm_schedule2"
    overdue = []
    for ct, patient, hospital, encounter in rows:
        deadline = getattr(ct, column)
        if deadline is None or deadline >= now or not _is_open(ct):
            continue
        elapsed = days_between(deadline, now)
        overdue.append(
            OverdueTcmEncounter(
                encounter_key=ct.encounter_key,
                care_transition_key=ct.care_transition_key,
                tenant_key=ct.tenant_key,
                patient_name=patient_name(patient, ct.patient_key),
                location=_location(hospital, encounter),
                discharge_datetime=encounter.discharge_datetime if encounter is not None else None,
                tcm_schedule=deadline,
                days_passed=f"{elapsed}d",
                days_elapsed=elapsed,
                status=ct.status,
                priority=ct.priority or "",
                risk_tier=ct.risk_tier or "",
                visit_number=ct.visit_number,
            )
        )
    overdue.sort(key=lambda item: item.tcm_schedule, reverse=True)
    return overdue


def overdue_follow_ups(
    encounters: Iterable, now: datetime, patient_names: dict[int, str] | None = None
) -> list[OverdueAlert]:
    patient_names = patient_names or {}
    alerts = []
    for encounter in encounters:
        if encounter.discharge_datetime is None:
            continue
        since_discharge = days_between(encounter.discharge_datetime, now)
        if since_discharge <= TCM_FOLLOW_UP_WINDOW_DAYS:
            continue
        alerts.append(
            OverdueAlert(
                alert_id=f"{AlertType.FOLLOW_UP.value}-{encounter.encounter_key}",
                alert_type=AlertType.FOLLOW_UP,
                patient_name=patient_names.get(encounter.patient_key) or f"Patient {encounter.patient_key}",
                days_overdue=since_discharge - TCM_FOLLOW_UP_WINDOW_DAYS,
                details=f"Discharged {encounter.discharge_datetime.strftime(_ALERT_DATE_FORMAT)}",
                encounter_key=encounter.encounter_key,
            )
        )
    return alerts


def recent_readmissions(
    encounters: Iterable, now: datetime, patient_names: dict[int, str] | None = None
) -> list[OverdueAlert]:
    patient_names = patient_names or {}
    lookback = now - timedelta(days=READMISSION_LOOKBACK_DAYS)
    alerts = []
    for encounter in encounters:
        admitted = encounter.admit_datetime
        if not is_readmission(encounter) or admitted is None:
            continue
        if not (lookback <= admitted <= now):
            continue
        alerts.append(
            OverdueAlert(
                alert_id=f"{AlertType.READMISSION.value}-{encounter.encounter_key}",
                alert_type=AlertType.READMISSION,
                patient_name=patient_names.get(encounter.patient_key) or f"Patient {encounter.patient_key}",
                days_overdue=days_between(admitted, now),
                details=f"Readmitted {admitted.strftime(_ALERT_DATE_FORMAT)}",
                encounter_key=encounter.encounter_key,
            )
        )
    return alerts


def build_alerts(
    rows: list[tuple],
    now: datetime,
    follow_up_encounters: Iterable = (),
    readmission_encounters: Iterable = (),
    patient_names: dict[int, str] | None = None,
) -> AlertSummary:
    names = {ct.patient_key: patient_name(patient, ct.patient_key) for ct, patient, _h, _e in rows}
    names.update(patient_names or {})

    outreach = overdue_outreach(rows, now)
    follow_ups = overdue_follow_ups(follow_up_encounters, now, names)
    readmissions = recent_readmissions(readmission_encounters, now, names)
    tcm = [
        OverdueAlert(
            alert_id=f"{AlertType.TCM.value}-{item.care_transition_key}",
            alert_type=AlertType.TCM,
            patient_name=item.patient_name,
            days_overdue=item.days_elapsed,
            details=f"TCM contact was due {item.tcm_schedule.strftime(_ALERT_DATE_FORMAT)}",
            care_transition_key=item.care_transition_key,
            encounter_key=item.encounter_key,
        )
        for item in overdue_schedule(rows, now, TcmSchedule.CONTACT)
    ]

    combined = outreach + follow_ups + readmissions + tcm
    combined.sort(key=lambda alert: alert.days_overdue, reverse=True)
    return AlertSummary(
        overdue_outreach_count=len(outreach),
        overdue_follow_up_count=len(follow_ups),
        readmissions_needing_review=len(readmissions),
        tcm_overdue_count=len(tcm),
        alerts=combined,
    )


def todays_workload(rows: Iterable[tuple], encounters: Iterable, now: datetime) -> WorkloadSummary:
    """
    Work due today for the care team.

    `rows` are joined transition tuples (closed ones are skipped where the
    count is about open work) and `encounters` the tenant's recent
    discharges. "Today" is the UTC calendar day containing `now`.
    """
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)

    outreach_due_today = 0
    tcm_overdue = 0
    pending_follow_ups = 0
    for ct, _patient, _hospital, encounter in rows:
        due = ct.next_outreach_date
        if due is not None and due > now:
            pending_follow_ups += 1
        if not _is_open(ct):
            continue
        if due is not None and today <= due < tomorrow:
            outreach_due_today += 1
        discharge = encounter.discharge_datetime if encounter is not None else None
        if discharge is not None and ct.outreach_date is None:
            if days_between(discharge, now) > TCM_CONTACT_WINDOW_DAYS:
                tcm_overdue += 1

    follow_ups_due_today = 0
    high_risk_discharges = 0
    for encounter in encounters:
        discharge = encounter.discharge_datetime
        if discharge is None:
            continue
        if FOLLOW_UP_DUE_FROM_DAYS <= days_between(discharge, now) <= TCM_FOLLOW_UP_WINDOW_DAYS:
            follow_ups_due_today += 1
        if now - HIGH_RISK_DISCHARGE_WINDOW <= discharge <= now:
            high_risk_discharges += 1

    return WorkloadSummary(
        evaluated_at=now,
        outreach_due_today=outreach_due_today,
        follow_ups_due_today=follow_ups_due_today,
        high_risk_discharges=high_risk_discharges,
        tcm_overdue=tcm_overdue,
        pending_follow_ups=pending_follow_ups,
    )


# ── Database-backed views ───────────────────────────────────────────────


def _open_rows(session: Session, tenant_key: str) -> list[tuple]:
    return (
        joined_transitions(session, tenant_key)
        .filter(CareTransition.status != CareTransitionStatus.CLOSED.value)
        .all()
    )


def _get_overdue_schedule(session: Session, tenant_key: str, which: TcmSchedule, now: datetime | None):
    now = now or utcnow()
    try:
        rows = _open_rows(session, tenant_key)
    except Exception:
        logger.exception("Error loading overdue TCM schedule %s for tenant %s", int(which), tenant_key)
        return []
    result = overdue_schedule(rows, now, which)
    logger.info("Returning %s overdue TCM schedule %s rows for tenant %s", len(result), int(which), tenant_key)
    return result


def get_overdue_tcm_schedule1(
    session: Session, tenant_key: str, now: datetime | None = None
) -> list[OverdueTcmEncounter]:
    return _get_overdue_schedule(session, tenant_key, TcmSchedule.CONTACT, now)


def get_overdue_tcm_schedule2(
    session: Session, tenant_key: str, now: datetime | None = None
) -> list[OverdueTcmEncounter]:
    return _get_overdue_schedule(session, tenant_key, TcmSchedule.FOLLOW_UP, now)


def get_overdue_alerts(session: Session, tenant_key: str, now: datetime | None = None) -> AlertSummary:
    """
    Combined alert feed. Follow-up alerts cover encounters linked to active
    transitions; readmission alerts cover every readmitted encounter of the
    tenant admitted inside the lookback window.
    """
    now = now or utcnow()
    try:
        rows = _open_rows(session, tenant_key)
        follow_up_encounters = {
            encounter.encounter_key: encounter
            for ct, _patient, _hospital, encounter in rows
            if encounter is not None and ct.is_active
        }
        readmitted = (
            tenant_query(session, Encounter, tenant_key, Patient)
            .outerjoin(
                Patient,
                (Patient.patient_key == Encounter.patient_key) & (Patient.tenant_key == Encounter.tenant_key),
            )
            .filter(func.upper(func.trim(Encounter.visit_status)).in_(READMITTED_VISIT_STATUSES))
            .filter(Encounter.admit_datetime >= now - timedelta(days=READMISSION_LOOKBACK_DAYS))
            .filter(Encounter.admit_datetime <= now)
            .all()
        )
    except Exception:
        logger.exception("Error building overdue alerts for tenant %s", tenant_key)
        return AlertSummary()

    readmission_names = {
        encounter.patient_key: patient_name(patient, encounter.patient_key) for encounter, patient in readmitted
    }
    return build_alerts(
        rows,
        now,
        follow_up_encounters=follow_up_encounters.values(),
        readmission_encounters=[encounter for encounter, _patient in readmitted],
        patient_names=readmission_names,
    )


def get_todays_workload(session: Session, tenant_key: str, now: datetime | None = None) -> WorkloadSummary:
    now = now or utcnow()
    try:
        rows = joined_transitions(session, tenant_key).all()
        recent_discharges = (
            tenant_query(session, Encounter, tenant_key)
            .filter(Encounter.discharge_datetime >= now - timedelta(days=TCM_FOLLOW_UP_WINDOW_DAYS + 1))
            .filter(Encounter.discharge_datetime <= now)
            .all()
        )
    except Exception:
        logger.exception("Error building today's workload for tenant %s", tenant_key)
        return WorkloadSummary(evaluated_at=now)
    return todays_workload(rows, recent_discharges, now)
