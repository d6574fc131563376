"""
TCM dashboard metrics for one tenant.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from packages.db.models import CareTransition, Encounter
from packages.shared.models import CareTransitionStatus, RiskTier, TcmMetrics
from packages.shared.utils.timestamps import utcnow
from packages.tcm.alerts import READMISSION_LOOKBACK_DAYS, READMITTED_VISIT_STATUSES
from packages.tcm.compliance import compliance_rate
from packages.tcm.tenancy import tenant_query

logger = logging.getLogger(__name__)


def summarize_transitions(
    transitions: Iterable,
    now: datetime,
    discharged_30d: int = 0,
    readmitted_30d: int = 0,
) -> TcmMetrics:
    transitions = list(transitions)
    active = [ct for ct in transitions if ct.is_active]
    statuses = Counter(ct.status for ct in transitions)
    risks = Counter(ct.risk_tier for ct in active)

    open_count = statuses.get(CareTransitionStatus.OPEN.value, 0)
    in_progress_count = statuses.get(CareTransitionStatus.IN_PROGRESS.value, 0)
    contact_met = sum(1 for ct in transitions if ct.tcm_schedule1 is not None and ct.tcm_schedule1 <= now)
    follow_up_met = sum(1 for ct in transitions if ct.tcm_schedule2 is not None and ct.tcm_schedule2 <= now)
    attempts = [ct.outreach_attempts or 0 for ct in transitions]

    return TcmMetrics(
        total_active_care_transitions=len(active),
        total_closed_care_transitions=len(transitions) - len(active),
        new_count=statuses.get(CareTransitionStatus.NEW.value, 0),
        open_count=open_count,
        in_progress_count=in_progress_count,
        high_risk_count=risks.get(RiskTier.HIGH.value, 0),
        medium_risk_count=risks.get(RiskTier.MEDIUM.value, 0),
        low_risk_count=risks.get(RiskTier.LOW.value, 0),
        pending_outreach_count=sum(
            1 for ct in active if ct.next_outreach_date is not None and ct.next_outreach_date <= now
        ),
        completed_tcm_2day_count=contact_met,
        completed_tcm_14day_count=follow_up_met,
        average_outreach_attempts=round(sum(attempts) / len(attempts), 2) if attempts else 0.0,
        tcm_contact_rate=compliance_rate(contact_met, open_count, in_progress_count),
        follow_up_rate=compliance_rate(follow_up_met, open_count, in_progress_count),
        readmission_rate_30d=round(100 * readmitted_30d / discharged_30d) if discharged_30d > 0 else 0,
        status_breakdown=dict(statuses),
    )


def get_tcm_metrics(
    session: Session,
    tenant_key: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    now: datetime | None = None,
) -> TcmMetrics:
    """Metrics over transitions created within the optional, inclusive [date_from, date_to] range."""
    now = now or utcnow()
    lookback = now - timedelta(days=READMISSION_LOOKBACK_DAYS)
    try:
        query = tenant_query(session, CareTransition, tenant_key)
        if date_from is not None:
            query = query.filter(CareTransition.created_utc >= date_from)
        if date_to is not None:
            query = query.filter(CareTransition.created_utc <= date_to)
        transitions = query.all()

        discharged_30d = (
            tenant_query(session, Encounter, tenant_key)
            .filter(Encounter.discharge_datetime >= lookback, Encounter.discharge_datetime <= now)
            .count()
        )
        readmitted_30d = (
            tenant_query(session, Encounter, tenant_key)
            .filter(func.upper(func.trim(Encounter.visit_status)).in_(READMITTED_VISIT_STATUSES))
            .filter(Encounter.admit_datetime >= lookback, Encounter.admit_datetime <= now)
            .count()
        )
    except Exception:
        logger.exception("Error retrieving TCM metrics for tenant %s", tenant_key)
        return TcmMetrics()

    return summarize_transitions(transitions, now, discharged_30d, readmitted_30d)
