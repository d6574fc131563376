from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.shared.utils.timestamps import is_acceptable_timestamp

from .enums import (
    AlertType,
    CareTransitionStatus,
    Priority,
    RiskTier,
    TimelineEventType,
    WindowState,
)

_TIMESTAMP_ERROR = "must be an ISO-8601 date-time or an HL7 timestamp (YYYYMMDD[HHMM[SS]])"


def _check_timestamp(value: Optional[str]) -> Optional[str]:
    if not is_acceptable_timestamp(value):
        raise ValueError(_TIMESTAMP_ERROR)
    return value


# ── Mutation inputs ─────────────────────────────────────────────────────


class CreateCareTransition(BaseModel):
    encounter_key: int = Field(gt=0)
    patient_key: int = Field(gt=0)
    hospital_key: int = Field(gt=0)
    visit_number: str = Field(min_length=1, max_length=64)
    care_manager_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_to_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_team: Optional[str] = Field(default=None, max_length=100)
    follow_up_provider_key: Optional[int] = None
    follow_up_appt_datetime_ts: Optional[str] = None
    communication_sent_date_ts: Optional[str] = None
    outreach_date_ts: Optional[str] = None
    outreach_method: Optional[str] = Field(default=None, max_length=50)
    tcm_schedule1_ts: Optional[str] = None
    tcm_schedule2_ts: Optional[str] = None
    status: Optional[CareTransitionStatus] = None
    priority: Optional[Priority] = None
    risk_tier: Optional[RiskTier] = None
    readmission_risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    consent_confirmed: Optional[bool] = None
    preferred_language: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator(
        "follow_up_appt_datetime_ts",
        "communication_sent_date_ts",
        "outreach_date_ts",
        "tcm_schedule1_ts",
        "tcm_schedule2_ts",
    )
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class UpdateCareTransition(BaseModel):
    """Partial update. Unknown keys (an outreach attempt count, for one) are ignored."""

    care_manager_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_to_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_team: Optional[str] = Field(default=None, max_length=100)
    follow_up_provider_key: Optional[int] = None
    follow_up_appt_datetime_ts: Optional[str] = None
    communication_sent_date_ts: Optional[str] = None
    outreach_date_ts: Optional[str] = None
    outreach_method: Optional[str] = Field(default=None, max_length=50)
    tcm_schedule1_ts: Optional[str] = None
    tcm_schedule2_ts: Optional[str] = None
    status: Optional[CareTransitionStatus] = None
    priority: Optional[Priority] = None
    risk_tier: Optional[RiskTier] = None
    readmission_risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    consent_confirmed: Optional[bool] = None
    preferred_language: Optional[str] = Field(default=None, max_length=50)
    last_outreach_date_ts: Optional[str] = None
    next_outreach_date_ts: Optional[str] = None
    contact_outcome: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator(
        "follow_up_appt_datetime_ts",
        "communication_sent_date_ts",
        "outreach_date_ts",
        "tcm_schedule1_ts",
        "tcm_schedule2_ts",
        "last_outreach_date_ts",
        "next_outreach_date_ts",
    )
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class OutreachAttempt(BaseModel):
    outreach_method: Optional[str] = Field(default=None, max_length=50)
    outreach_date: Optional[str] = None  # ISO; falls back to now when absent or unparseable
    contact_outcome: Optional[str] = Field(default=None, max_length=500)
    next_outreach_date_ts: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    assigned_to_user_key: Optional[str] = Field(default=None, max_length=64)
    status: Optional[CareTransitionStatus] = None
    # Accepted for payload compatibility; the server owns the count.
    outreach_attempts: Optional[int] = None

    @field_validator("next_outreach_date_ts")
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class AssignCareManager(BaseModel):
    care_manager_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_to_user_key: Optional[str] = Field(default=None, max_length=64)
    assigned_team: Optional[str] = Field(default=None, max_length=100)


class UpdatePriority(BaseModel):
    priority: Priority


class UpdateRiskTier(BaseModel):
    risk_tier: RiskTier


class CloseCareTransition(BaseModel):
    close_reason: str = Field(default="", max_length=200)
    closed_by_user_key: str = Field(default="", max_length=64)


class CareTransitionResult(BaseModel):
    success: bool
    key: Optional[int] = None
    message: Optional[str] = None


# ── Read models ─────────────────────────────────────────────────────────


class PatientInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_key: int
    patient_name: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    mrn: Optional[str] = None
    phone: Optional[str] = None


class HospitalInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hospital_key: int
    hospital_code: str
    hospital_name: str
    city: Optional[str] = None
    state: Optional[str] = None
    is_active: bool = True


class EncounterInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    encounter_key: int
    admit_datetime: Optional[datetime] = None
    discharge_datetime: Optional[datetime] = None
    location: Optional[str] = None
    visit_status: Optional[str] = None


class CareTransitionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    care_transition_key: int
    tenant_key: str
    encounter_key: int
    patient_key: int
    hospital_key: int
    visit_number: str
    care_manager_user_key: Optional[str] = None
    assigned_to_user_key: Optional[str] = None
    assigned_team: Optional[str] = None
    follow_up_provider_key: Optional[int] = None
    follow_up_appt_datetime: Optional[datetime] = None
    communication_sent_date: Optional[datetime] = None
    outreach_date: Optional[datetime] = None
    outreach_method: Optional[str] = None
    tcm_schedule1: Optional[datetime] = None
    tcm_schedule2: Optional[datetime] = None
    status: CareTransitionStatus
    priority: Optional[Priority] = None
    risk_tier: Optional[RiskTier] = None
    readmission_risk_score: Optional[int] = None
    consent_confirmed: Optional[bool] = None
    preferred_language: Optional[str] = None
    outreach_attempts: int = 0
    last_outreach_date: Optional[datetime] = None
    next_outreach_date: Optional[datetime] = None
    contact_outcome: Optional[str] = None
    close_reason: Optional[str] = None
    closed_by_user_key: Optional[str] = None
    closed_utc: Optional[datetime] = None
    notes: Optional[str] = None
    is_active: bool
    created_utc: datetime
    last_updated_utc: datetime


class CareTransitionSummary(BaseModel):
    care_transition_key: int
    tenant_key: str
    encounter_key: int
    patient_key: int
    patient_name: Optional[str] = None
    hospital_key: int
    visit_number: str
    status: CareTransitionStatus
    priority: Optional[Priority] = None
    risk_tier: Optional[RiskTier] = None
    tcm_schedule1: Optional[datetime] = None
    tcm_schedule2: Optional[datetime] = None
    next_outreach_date: Optional[datetime] = None
    outreach_attempts: int = 0
    created_utc: datetime
    last_updated_utc: datetime
    care_manager_user_key: Optional[str] = None
    assigned_to_user_key: Optional[str] = None
    assigned_team: Optional[str] = None
    encounter: Optional[EncounterInfo] = None
    patient: Optional[PatientInfo] = None
    hospital: Optional[HospitalInfo] = None


class CareTransitionAssignment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    care_transition_key: int
    tenant_key: str
    care_manager_user_key: Optional[str] = None
    assigned_to_user_key: Optional[str] = None
    assigned_team: Optional[str] = None
    last_updated_utc: datetime


class CareTransitionNoteRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    note_key: int
    care_transition_key: int
    attempt_number: int
    author_user_key: Optional[str] = None
    text: str
    created_utc: datetime


# ── Derived views ───────────────────────────────────────────────────────


class TimelineEvent(BaseModel):
    event_id: int
    event_type: TimelineEventType
    description: str
    event_timestamp: datetime
    performed_by: Optional[str] = None
    metadata: Optional[dict[str, str]] = None


class WindowStatus(BaseModel):
    state: WindowState
    deadline: Optional[datetime] = None
    met: bool = False  # deadline has passed
    breached: bool = False  # deadline has passed while the transition is still open
    days_elapsed: Optional[int] = None


class TransitionCompliance(BaseModel):
    care_transition_key: int
    evaluated_at: datetime
    contact_window: WindowStatus
    follow_up_window: WindowStatus


class OverdueTcmEncounter(BaseModel):
    encounter_key: int
    care_transition_key: int
    tenant_key: str
    patient_name: str
    location: Optional[str] = None
    discharge_datetime: Optional[datetime] = None
    tcm_schedule: Optional[datetime] = None
    days_passed: str
    days_elapsed: int
    status: CareTransitionStatus
    priority: str = ""
    risk_tier: str = ""
    visit_number: str


class OverdueAlert(BaseModel):
    alert_id: str
    alert_type: AlertType
    patient_name: str
    days_overdue: int
    details: str
    care_transition_key: Optional[int] = None
    encounter_key: Optional[int] = None


class AlertSummary(BaseModel):
    overdue_outreach_count: int = 0
    overdue_follow_up_count: int = 0
    readmissions_needing_review: int = 0
    tcm_overdue_count: int = 0
    alerts: list[OverdueAlert] = Field(default_factory=list)


class TcmMetrics(BaseModel):
    total_active_care_transitions: int = 0
    total_closed_care_transitions: int = 0
    new_count: int = 0
    open_count: int = 0
    in_progress_count: int = 0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    pending_outreach_count: int = 0
    completed_tcm_2day_count: int = 0
    completed_tcm_14day_count: int = 0
    average_outreach_attempts: float = 0.0
    tcm_contact_rate: int = 0
    follow_up_rate: int = 0
    readmission_rate_30d: int = 0
    status_breakdown: dict[str, int] = Field(default_factory=dict)


class WorkloadSummary(BaseModel):
    """Counts for the care team's work due today."""

    evaluated_at: datetime
    outreach_due_today: int = 0
    follow_ups_due_today: int = 0
    high_risk_discharges: int = 0
    tcm_overdue: int = 0
    pending_follow_ups: int = 0
