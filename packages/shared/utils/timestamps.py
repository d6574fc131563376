"""
Timestamp normalization for care transition inputs.

Two textual formats are accepted:
  * ISO-8601 date-times ("2025-01-15T08:30:00Z", "2025-01-15 08:30", "2025-01-15")
  * HL7 fixed-width numeric timestamps: YYYYMMDD, YYYYMMDDHHMM or YYYYMMDDHHMMSS

Everything is normalized to a naive UTC datetime, which is how the
care transition tables store time.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"\d+", re.ASCII)
_HL7_TIMESTAMP = re.compile(r"\d{8}|\d{12}|\d{14}", re.ASCII)
NOTE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or date-time. Returns None when it does not parse."""
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw[-1] in ("Z", "z"):
        raw = raw[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def _parse_fixed_width(raw: str) -> datetime | None:
    # A 12-digit value carries HHMM, but only the date part is read unless
    # the full 14-digit form is supplied.
    if len(raw) < 8:
        return None
    try:
        year, month, day = int(raw[0:4]), int(raw[4:6]), int(raw[6:8])
        if len(raw) >= 14:
            hour, minute, second = int(raw[8:10]), int(raw[10:12]), int(raw[12:14])
            return datetime(year, month, day, hour, minute, second)
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Normalize an ISO-8601 or HL7 timestamp to a naive UTC datetime.

    Blank input yields None. Input that cannot be parsed also yields None;
    the failure is logged rather than raised so a bad optional field never
    aborts the surrounding operation. Request models reject malformed text
    before it gets here (see `is_acceptable_timestamp`).
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    if not _DIGITS.fullmatch(raw):
        parsed = parse_iso_datetime(raw)
        if parsed is not None:
            return parsed

    parsed = _parse_fixed_width(raw)
    if parsed is None:
        logger.warning("Unparseable timestamp treated as absent: %r", value)
    return parsed


def is_valid_hl7_timestamp(value: str | None) -> bool:
    """Blank, or an all-digit string of exactly 8, 12 or 14 characters."""
    if value is None or not value.strip():
        return True
    return _HL7_TIMESTAMP.fullmatch(value) is not None


def is_acceptable_timestamp(value: str | None) -> bool:
    """Boundary check for timestamp text: blank, HL7 fixed-width or ISO-8601."""
    if value is None or not value.strip():
        return True
    raw = value.strip()
    if _DIGITS.fullmatch(raw):
        return is_valid_hl7_timestamp(raw) and _parse_fixed_width(raw) is not None
    return parse_iso_datetime(value) is not None


def format_note_timestamp(value: datetime) -> str:
    return value.strftime(NOTE_TIMESTAMP_FORMAT)
