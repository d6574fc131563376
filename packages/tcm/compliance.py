"""
TCM window compliance.

A window is "met" once its deadline has passed; whether contact actually
happened is not consulted. Dashboards count met windows as completed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.shared.models import (
    CareTransitionStatus,
    TransitionCompliance,
    WindowState,
    WindowStatus,
)
from packages.shared.utils.timestamps import utcnow
from packages.tcm.lifecycle import find_transition
from packages.tcm.tenancy import TenantScopeError

logger = logging.getLogger(__name__)

TCM_CONTACT_WINDOW_DAYS = 2
TCM_FOLLOW_UP_WINDOW_DAYS = 14


def evaluate_window(deadline: datetime | None, now: datetime, closed: bool) -> WindowStatus:
    if deadline is None:
        return WindowStatus(state=WindowState.NOT_SCHEDULED)
    met = deadline <= now
    return WindowStatus(
        state=WindowState.ELAPSED if met else WindowState.PENDING,
        deadline=deadline,
        met=met,
        breached=deadline < now and not closed,
        days_elapsed=(now - deadline).days if met else None,
    )


def evaluate_transition(ct, now: datetime | None = None) -> TransitionCompliance:
    now = now or utcnow()
    closed = ct.status == CareTransitionStatus.CLOSED.value
    return TransitionCompliance(
        care_transition_key=ct.care_transition_key,
        evaluated_at=now,
        contact_window=evaluate_window(ct.tcm_schedule1, now, closed),
        follow_up_window=evaluate_window(ct.tcm_schedule2, now, closed),
    )


def compliance_rate(met_count: int, open_count: int, in_progress_count: int) -> int:
    """Whole-number percentage of met windows over open + in-progress transitions."""
    return round(100 * met_count / max(open_count + in_progress_count, 1))


def default_schedules(discharge: datetime) -> tuple[datetime, datetime]:
    return (
        discharge + timedelta(days=TCM_CONTACT_WINDOW_DAYS),
        discharge + timedelta(days=TCM_FOLLOW_UP_WINDOW_DAYS),
    )


def get_compliance(
    session: Session, tenant_key: str, key: int, now: datetime | None = None
) -> TransitionCompliance | None:
    try:
        ct = find_transition(session, tenant_key, key)
    except (TenantScopeError, SQLAlchemyError):
        logger.exception("Error evaluating compliance for care transition %s", key)
        return None
    if ct is None:
        return None
    return evaluate_transition(ct, now)
