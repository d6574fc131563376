"""
Discharge intake: open a care transition for a discharged encounter.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from packages.db.models import CareTransition, Encounter
from packages.shared.models import (
    CareTransitionResult,
    CareTransitionStatus,
    Priority,
    RiskTier,
)
from packages.shared.utils.timestamps import utcnow
from packages.tcm.compliance import default_schedules
from packages.tcm.lifecycle import failure, storage_failure
from packages.tcm.tenancy import TenantScopeError, require_tenant_key, tenant_query

logger = logging.getLogger(__name__)


def open_transition_for_encounter(
    session: Session,
    tenant_key: str,
    encounter_key: int,
    care_manager_user_key: str | None = None,
    priority: Priority | None = None,
    risk_tier: RiskTier | None = None,
) -> CareTransitionResult:
    """
    Create the care transition for a discharge event.

    Idempotent per encounter: when an active transition already exists its
    key is returned instead of creating a second one.
    """
    try:
        tenant_key = require_tenant_key(tenant_key)
        encounter = (
            tenant_query(session, Encounter, tenant_key)
            .filter(Encounter.encounter_key == encounter_key)
            .first()
        )
        if encounter is None:
            return failure("Encounter not found")
        if encounter.discharge_datetime is None:
            return failure("Encounter has not been discharged")

        existing = (
            tenant_query(session, CareTransition, tenant_key)
            .filter(CareTransition.encounter_key == encounter_key)
            .filter(CareTransition.is_active.is_(True))
            .order_by(CareTransition.last_updated_utc.desc())
            .first()
        )
        if existing is not None:
            return CareTransitionResult(
                success=True,
                key=existing.care_transition_key,
                message="Active care transition already exists",
            )

        contact_due, follow_up_due = default_schedules(encounter.discharge_datetime)
        now = utcnow()
        ct = CareTransition(
            tenant_key=tenant_key,
            encounter_key=encounter.encounter_key,
            patient_key=encounter.patient_key,
            hospital_key=encounter.hospital_key,
            visit_number=encounter.visit_number,
            care_manager_user_key=care_manager_user_key or None,
            tcm_schedule1=encounter.tcm_schedule1 or contact_due,
            tcm_schedule2=encounter.tcm_schedule2 or follow_up_due,
            status=CareTransitionStatus.NEW.value,
            priority=priority.value if priority is not None else None,
            risk_tier=risk_tier.value if risk_tier is not None else None,
            outreach_attempts=0,
            is_active=True,
            created_utc=now,
            last_updated_utc=now,
        )
        session.add(ct)
        session.flush()
        logger.info(
            "Opened care transition %s from discharge of encounter %s tenant=%s",
            ct.care_transition_key,
            encounter_key,
            tenant_key,
        )
        return CareTransitionResult(
            success=True,
            key=ct.care_transition_key,
            message="Care transition created successfully",
        )
    except TenantScopeError as exc:
        return failure(str(exc))
    except Exception as exc:
        return storage_failure(session, "discharge intake", None, exc)
