"""Tests for the check engine models and classification."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from statusboard.health.engine import (
    MAX_ERROR_DETAIL_LENGTH,
    MAX_MESSAGE_LENGTH,
    CheckDefinition,
    CheckRunResult,
    CheckSnapshot,
    Deadline,
    ErrorCode,
    Status,
    classify,
    normalize_result,
    parse_timestamp,
    truncate,
)


def _definition(threshold: int | None) -> CheckDefinition:
    return CheckDefinition(
        key="sendgrid.profile", display_name="SendGrid API", category="Email",
        degraded_threshold_ms=threshold,
    )


# ── Classification ───────────────────────────────────────────────────────────


class TestClassify:
    def test_up_under_threshold_stays_up(self) -> None:
        raw = CheckRunResult(status=Status.UP, latency_ms=1500)
        assert classify(_definition(2000), raw).status == Status.UP

    def test_up_at_threshold_stays_up(self) -> None:
        raw = CheckRunResult(status=Status.UP, latency_ms=2000)
        assert classify(_definition(2000), raw).status == Status.UP

    def test_slow_up_becomes_degraded(self) -> None:
        raw = CheckRunResult(status=Status.UP, latency_ms=2600, message="Reachable")
        result = classify(_definition(2000), raw)
        assert result.status == Status.DEGRADED
        assert result.message == "Reachable"
        assert raw.status == Status.UP  # input untouched

    def test_no_threshold_never_degrades(self) -> None:
        raw = CheckRunResult(status=Status.UP, latency_ms=60_000)
        assert classify(_definition(None), raw).status == Status.UP

    def test_down_is_not_reclassified(self) -> None:
        raw = CheckRunResult(status=Status.DOWN, latency_ms=5000, error_code=ErrorCode.TIMEOUT.value)
        assert classify(_definition(2000), raw).status == Status.DOWN

    def test_unknown_is_not_reclassified(self) -> None:
        raw = CheckRunResult(status=Status.UNKNOWN, latency_ms=5000)
        assert classify(_definition(2000), raw).status == Status.UNKNOWN


# ── Definitions ──────────────────────────────────────────────────────────────


class TestCheckDefinition:
    def test_defaults(self) -> None:
        d = CheckDefinition(key="a.b", display_name="A", category="X")
        assert d.interval_seconds == 300
        assert d.timeout_seconds == 10
        assert d.degraded_threshold_ms is None
        assert d.is_enabled is True

    def test_key_and_name_are_trimmed(self) -> None:
        d = CheckDefinition(key="  a.b ", display_name=" A ", category=" X ")
        assert d.key == "a.b"
        assert d.display_name == "A"
        assert d.category == "X"

    @pytest.mark.parametrize("field,value", [
        ("key", "   "),
        ("display_name", ""),
        ("interval_seconds", 0),
        ("timeout_seconds", -1),
        ("degraded_threshold_ms", 0),
    ])
    def test_invalid_values_rejected(self, field, value) -> None:
        fields = {"key": "a.b", "display_name": "A", "category": "X", field: value}
        with pytest.raises(ValueError):
            CheckDefinition(**fields)

    def test_same_contribution_ignores_enabled_flag(self) -> None:
        a = CheckDefinition(key="a.b", display_name="A", category="X")
        b = CheckDefinition(key="a.b", display_name="A", category="X", is_enabled=False)
        assert a.same_contribution(b)

    def test_same_contribution_detects_threshold_change(self) -> None:
        a = CheckDefinition(key="a.b", display_name="A", category="X", degraded_threshold_ms=100)
        b = CheckDefinition(key="a.b", display_name="A", category="X", degraded_threshold_ms=200)
        assert not a.same_contribution(b)


# ── Normalisation ────────────────────────────────────────────────────────────


class TestNormalize:
    def test_measured_latency_fills_gap(self) -> None:
        result = normalize_result(CheckRunResult(status=Status.UP), 37)
        assert result.latency_ms == 37

    def test_negative_latency_floored(self) -> None:
        result = normalize_result(CheckRunResult(status=Status.UP, latency_ms=-5), 10)
        assert result.latency_ms == 0

    def test_long_text_truncated(self) -> None:
        raw = CheckRunResult(
            status=Status.DOWN,
            message="m" * (MAX_MESSAGE_LENGTH + 50),
            error_detail="d" * (MAX_ERROR_DETAIL_LENGTH + 50),
        )
        result = normalize_result(raw, 1)
        assert len(result.message) == MAX_MESSAGE_LENGTH
        assert len(result.error_detail) == MAX_ERROR_DETAIL_LENGTH

    def test_truncate_unwraps_enum(self) -> None:
        assert truncate(ErrorCode.TIMEOUT, 200) == "Timeout"

    def test_truncate_blank_is_none(self) -> None:
        assert truncate("   ", 10) is None


# ── Snapshots / deadlines ────────────────────────────────────────────────────


class TestSnapshot:
    def test_to_dict_serialises_status_and_time(self) -> None:
        at = datetime(2025, 1, 1, tzinfo=timezone.utc)
        snap = CheckSnapshot.from_result(
            "a.b", CheckRunResult(status=Status.DEGRADED, latency_ms=9, message="slow"), at,
        )
        d = snap.to_dict()
        assert d["status"] == "degraded"
        assert d["checked_at"] == "2025-01-01T00:00:00+00:00"
        assert d["latency_ms"] == 9

    def test_parse_timestamp_assumes_utc(self) -> None:
        assert parse_timestamp("2025-01-01T00:00:00").tzinfo == timezone.utc
        assert parse_timestamp("") is None


class TestDeadline:
    def test_cancel_marks_expired(self) -> None:
        deadline = Deadline(60)
        assert not deadline.expired
        deadline.cancel()
        assert deadline.expired

    def test_remaining_never_negative(self) -> None:
        deadline = Deadline(0.000001)
        assert deadline.remaining() >= 0
