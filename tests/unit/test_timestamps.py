from __future__ import annotations

import logging
from datetime import datetime

import pytest

from packages.shared.utils.timestamps import (
    format_note_timestamp,
    is_acceptable_timestamp,
    is_valid_hl7_timestamp,
    parse_timestamp,
    utcnow,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("20250115", datetime(2025, 1, 15)),
        ("20250115083045", datetime(2025, 1, 15, 8, 30, 45)),
        ("20250115083000", datetime(2025, 1, 15, 8, 30)),
        ("2025-01-15T08:30:00Z", datetime(2025, 1, 15, 8, 30)),
        ("2025-01-15T10:30:00+02:00", datetime(2025, 1, 15, 8, 30)),
        ("2025-01-15 08:30", datetime(2025, 1, 15, 8, 30)),
        ("2025-01-15", datetime(2025, 1, 15)),
    ],
)
def test_parse_timestamp_accepts_iso_and_hl7(raw, expected):
    assert parse_timestamp(raw) == expected


def test_twelve_digit_value_reads_date_only():
    assert parse_timestamp("202501150830") == datetime(2025, 1, 15)


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_input_is_absent(raw):
    assert parse_timestamp(raw) is None


@pytest.mark.parametrize("raw", ["garbage", "2025-13-45", "20251345", "2025011", "\u00b2" * 8])
def test_malformed_input_returns_none_and_logs(raw, caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_timestamp(raw) is None
    assert "Unparseable timestamp" in caplog.text


def test_parsed_values_are_naive():
    assert parse_timestamp("2025-01-15T08:30:00-05:00").tzinfo is None
    assert utcnow().tzinfo is None


def test_hl7_validation():
    assert is_valid_hl7_timestamp(None)
    assert is_valid_hl7_timestamp("")
    assert is_valid_hl7_timestamp("20250115")
    assert is_valid_hl7_timestamp("202501150830")
    assert is_valid_hl7_timestamp("20250115083045")
    assert not is_valid_hl7_timestamp("2025011")
    assert not is_valid_hl7_timestamp("2025011508")
    assert not is_valid_hl7_timestamp("2025O115")
    assert not is_valid_hl7_timestamp("\u00b2" * 8)


def test_boundary_check_accepts_either_format():
    assert is_acceptable_timestamp("2025-01-15T08:30:00Z")
    assert is_acceptable_timestamp("20250115")
    assert is_acceptable_timestamp("")
    assert not is_acceptable_timestamp("2025011")
    assert not is_acceptable_timestamp("next tuesday")


def test_note_timestamp_format():
    assert format_note_timestamp(datetime(2025, 1, 15, 8, 30, 5)) == "2025-01-15 08:30:05 UTC"


@pytest.mark.parametrize("raw", ["\u00b2" * 8, "20251345"])
def test_boundary_check_rejects_digits_that_do_not_parse(raw):
    assert not is_acceptable_timestamp(raw)
