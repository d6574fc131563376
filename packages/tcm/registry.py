"""
Read-only joins between care transitions and the encounter, patient and
hospital registries. All joins are outer joins on key + tenant so a
transition whose registry rows are missing is still returned.
"""
from __future__ import annotations

from sqlalchemy import and_
from sqlalchemy.orm import Query, Session

from packages.db.models import CareTransition, Encounter, Hospital, Patient
from packages.shared.models import (
    CareTransitionSummary,
    EncounterInfo,
    HospitalInfo,
    PatientInfo,
)
from packages.tcm.tenancy import tenant_query


def joined_transitions(session: Session, tenant_key: str) -> Query:
    """Rows of (CareTransition, Patient | None, Hospital | None, Encounter | None)."""
    return (
        tenant_query(session, CareTransition, tenant_key, Patient, Hospital, Encounter)
        .outerjoin(
            Patient,
            and_(
                Patient.patient_key == CareTransition.patient_key,
                Patient.tenant_key == CareTransition.tenant_key,
            ),
        )
        .outerjoin(
            Hospital,
            and_(
                Hospital.hospital_key == CareTransition.hospital_key,
                Hospital.tenant_key == CareTransition.tenant_key,
            ),
        )
        .outerjoin(
            Encounter,
            and_(
                Encounter.encounter_key == CareTransition.encounter_key,
                Encounter.tenant_key == CareTransition.tenant_key,
            ),
        )
    )


def patient_name(patient: Patient | None, patient_key: int | None) -> str:
    if patient is not None and patient.display_name:
        return patient.display_name
    return f"Patient {patient_key}"


def build_summary(
    ct: CareTransition,
    patient: Patient | None = None,
    hospital: Hospital | None = None,
    encounter: Encounter | None = None,
) -> CareTransitionSummary:
    return CareTransitionSummary(
        care_transition_key=ct.care_transition_key,
        tenant_key=ct.tenant_key,
        encounter_key=ct.encounter_key,
        patient_key=ct.patient_key,
        patient_name=patient_name(patient, ct.patient_key),
        hospital_key=ct.hospital_key,
        visit_number=ct.visit_number,
        status=ct.status,
        priority=ct.priority,
        risk_tier=ct.risk_tier,
        tcm_schedule1=ct.tcm_schedule1,
        tcm_schedule2=ct.tcm_schedule2,
        next_outreach_date=ct.next_outreach_date,
        outreach_attempts=ct.outreach_attempts or 0,
        created_utc=ct.created_utc,
        last_updated_utc=ct.last_updated_utc,
        care_manager_user_key=ct.care_manager_user_key,
        assigned_to_user_key=ct.assigned_to_user_key,
        assigned_team=ct.assigned_team,
        encounter=EncounterInfo.model_validate(encounter) if encounter is not None else None,
        patient=(
            PatientInfo(
                patient_key=patient.patient_key,
                patient_name=patient_name(patient, patient.patient_key),
                given_name=patient.given_name,
                family_name=patient.family_name,
                mrn=patient.mrn,
                phone=patient.phone,
            )
            if patient is not None
            else None
        ),
        hospital=HospitalInfo.model_validate(hospital) if hospital is not None else None,
    )
