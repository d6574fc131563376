from enum import Enum


class CareTransitionStatus(str, Enum):
    NEW = "New"
    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    CLOSED = "Closed"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskTier(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TimelineEventType(str, Enum):
    CREATED = "Created"
    ASSIGNMENT = "Assignment"
    COMMUNICATION = "Communication"
    TCM_CONTACT = "TCM Contact"
    OUTREACH = "Outreach"
    APPOINTMENT = "Appointment"
    CLOSED = "Closed"


class WindowState(str, Enum):
    NOT_SCHEDULED = "NotScheduled"
    PENDING = "Pending"  # deadline still ahead
    ELAPSED = "Elapsed"  # deadline has passed


class AlertType(str, Enum):
    OUTREACH = "outreach"
    FOLLOW_UP = "followup"
    READMISSION = "readmission"
    TCM = "tcm"


class TcmSchedule(int, Enum):
    CONTACT = 1  # 2-day contact deadline
    FOLLOW_UP = 2  # 14-day follow-up deadline
