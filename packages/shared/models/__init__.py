from .enums import (
    AlertType,
    CareTransitionStatus,
    Priority,
    RiskTier,
    TcmSchedule,
    TimelineEventType,
    WindowState,
)
from .domain import (
    AlertSummary,
    AssignCareManager,
    CareTransitionAssignment,
    CareTransitionNoteRecord,
    CareTransitionRecord,
    CareTransitionResult,
    CareTransitionSummary,
    CloseCareTransition,
    CreateCareTransition,
    EncounterInfo,
    HospitalInfo,
    OutreachAttempt,
    OverdueAlert,
    OverdueTcmEncounter,
    PatientInfo,
    TcmMetrics,
    TimelineEvent,
    TransitionCompliance,
    UpdateCareTransition,
    UpdatePriority,
    UpdateRiskTier,
    WindowStatus,
    WorkloadSummary,
)
