"""
SQLAlchemy ORM models for Transitline persistence.

Every table carries a tenant_key; the engine never reads or writes a row
without filtering on it.
"""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship

from packages.shared.models.enums import CareTransitionStatus
from packages.shared.utils.timestamps import utcnow


class Base(DeclarativeBase):
    pass


class CareTransition(Base):
    __tablename__ = "care_transitions"

    care_transition_key = Column(Integer, primary_key=True, autoincrement=True)
    tenant_key = Column(String(64), nullable=False)

    encounter_key = Column(Integer, nullable=False)
    patient_key = Column(Integer, nullable=False)
    hospital_key = Column(Integer, nullable=False)
    visit_number = Column(String(64), nullable=False)

    care_manager_user_key = Column(String(64), nullable=True)
    assigned_to_user_key = Column(String(64), nullable=True)
    assigned_team = Column(String(100), nullable=True)

    follow_up_provider_key = Column(Integer, nullable=True)
    follow_up_appt_datetime = Column(DateTime, nullable=True)
    communication_sent_date = Column(DateTime, nullable=True)
    outreach_date = Column(DateTime, nullable=True)
    outreach_method = Column(String(50), nullable=True)
    tcm_schedule1 = Column(DateTime, nullable=True)  # 2-day contact deadline
    tcm_schedule2 = Column(DateTime, nullable=True)  # 14-day follow-up deadline

    status = Column(String(20), nullable=False, default=CareTransitionStatus.NEW.value)  # New | Open | InProgress | Closed
    priority = Column(String(20), nullable=True)  # Low | Medium | High
    risk_tier = Column(String(20), nullable=True)  # Low | Medium | High
    readmission_risk_score = Column(Integer, nullable=True)
    consent_confirmed = Column(Boolean, nullable=True)
    preferred_language = Column(String(50), nullable=True)

    outreach_attempts = Column(Integer, nullable=False, default=0)
    last_outreach_date = Column(DateTime, nullable=True)
    next_outreach_date = Column(DateTime, nullable=True)
    contact_outcome = Column(String(500), nullable=True)

    close_reason = Column(String(200), nullable=True)
    closed_by_user_key = Column(String(64), nullable=True)
    closed_utc = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_utc = Column(DateTime, nullable=False, default=utcnow)
    last_updated_utc = Column(DateTime, nullable=False, default=utcnow)

    note_entries = relationship(
        "CareTransitionNote",
        back_populates="care_transition",
        cascade="all, delete-orphan",
        order_by="CareTransitionNote.note_key",
    )

    __table_args__ = (
        Index("ix_care_transitions_tenant_encounter", "tenant_key", "encounter_key"),
        Index("ix_care_transitions_tenant_patient", "tenant_key", "patient_key"),
        Index("ix_care_transitions_tenant_status", "tenant_key", "status"),
    )


class CareTransitionNote(Base):
    """Structured, append-only outreach note; mirrors the lines appended to CareTransition.notes."""

    __tablename__ = "care_transition_notes"

    note_key = Column(Integer, primary_key=True, autoincrement=True)
    tenant_key = Column(String(64), nullable=False)
    care_transition_key = Column(Integer, ForeignKey("care_transitions.care_transition_key"), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    author_user_key = Column(String(64), nullable=True)
    text = Column(Text, nullable=False)
    created_utc = Column(DateTime, nullable=False, default=utcnow)

    care_transition = relationship("CareTransition", back_populates="note_entries")

    __table_args__ = (
        Index("ix_care_transition_notes_tenant_ct", "tenant_key", "care_transition_key"),
    )


# ── Reference registries (populated by external systems, read-only here) ──


class Hospital(Base):
    __tablename__ = "hospitals"

    hospital_key = Column(Integer, primary_key=True)
    tenant_key = Column(String(64), nullable=False)
    hospital_code = Column(String(64), nullable=False)
    hospital_name = Column(String(200), nullable=False)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Patient(Base):
    __tablename__ = "patients"

    patient_key = Column(Integer, primary_key=True)
    tenant_key = Column(String(64), nullable=False)
    given_name = Column(String(100), nullable=True)
    family_name = Column(String(100), nullable=True)
    mrn = Column(String(64), nullable=True)
    phone = Column(String(50), nullable=True)
    dob = Column(DateTime, nullable=True)

    @property
    def display_name(self) -> str:
        return f"{self.given_name or ''} {self.family_name or ''}".strip()


class Encounter(Base):
    __tablename__ = "encounters"

    encounter_key = Column(Integer, primary_key=True)
    tenant_key = Column(String(64), nullable=False)
    hospital_key = Column(Integer, nullable=False)
    patient_key = Column(Integer, nullable=False)
    visit_number = Column(String(64), nullable=False)
    admit_datetime = Column(DateTime, nullable=True)
    discharge_datetime = Column(DateTime, nullable=True)
    location = Column(String(100), nullable=True)
    visit_status = Column(String(32), nullable=True)  # "READMITTED" / "R" flags a readmission
    tcm_schedule1 = Column(DateTime, nullable=True)
    tcm_schedule2 = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_encounters_tenant_discharge", "tenant_key", "discharge_datetime"),
    )
