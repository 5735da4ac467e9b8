"""Tests for duration parsing and formatting."""

from __future__ import annotations

import pytest

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.duration import format_duration, parse_duration
from loadpace.profiles.loader import profile_from_dict
from loadpace.profiles.stages import Stage, StageRamp


class TestParseDuration:
    """Tests for parse_duration()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (5, 5.0),
            (2.5, 2.5),
            ("30", 30.0),
            ("5s", 5.0),
            ("500ms", 0.5),
            ("1m", 60.0),
            ("1m30s", 90.0),
            ("1h30m", 5400.0),
            ("1.5s", 1.5),
            ("  2M ", 120.0),
            ("0s", 0.0),
        ],
    )
    def test_valid(self, value: object, expected: float) -> None:
        assert parse_duration(value) == pytest.approx(expected)  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", ["abc", "5x", "-5s", "s5", "1m 30s", "5 s"])
    def test_malformed_string(self, value: str) -> None:
        with pytest.raises(InvalidProfile, match="not a valid duration"):
            parse_duration(value)

    def test_empty_string(self) -> None:
        with pytest.raises(InvalidProfile, match="must not be empty"):
            parse_duration("   ")

    @pytest.mark.parametrize("value", [-1, -0.5, float("inf"), "inf", "nan"])
    def test_negative_or_non_finite(self, value: object) -> None:
        with pytest.raises(InvalidProfile, match="finite, non-negative"):
            parse_duration(value)  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", [True, None, [5], {"s": 5}])
    def test_wrong_type(self, value: object) -> None:
        with pytest.raises(InvalidProfile, match="number of seconds or a duration string"):
            parse_duration(value)  # type: ignore[arg-type]

    def test_field_name_in_message(self) -> None:
        with pytest.raises(InvalidProfile, match="^time_unit "):
            parse_duration("soon", "time_unit")


class TestFormatDuration:
    """Tests for format_duration()."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0.0, "0ms"),
            (0.25, "250ms"),
            (5.0, "5s"),
            (2.5, "2.5s"),
            (60.0, "1m"),
            (90.0, "1m30s"),
            (3600.0, "1h"),
            (5400.0, "1h30m"),
            (300.0, "5m"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("seconds", [0.5, 5.0, 90.0, 5400.0, 3725.0])
    def test_output_parses_back(self, seconds: float) -> None:
        assert parse_duration(format_duration(seconds)) == pytest.approx(seconds)

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0.0004, "0.0004s"),
            (1.0004, "1.0004s"),
            (0.00001, "0.00001s"),
            (59.1234567, "59.1234567s"),
        ],
    )
    def test_falls_back_to_exact_seconds(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected
        assert parse_duration(format_duration(seconds)) == seconds

    def test_stage_ramp_to_dict_reloads_exactly(self) -> None:
        ramp = StageRamp([Stage(1.0004, 1), Stage(0.0004, 2)])
        reloaded = profile_from_dict(ramp.to_dict())

        assert isinstance(reloaded, StageRamp)
        assert [s.duration for s in reloaded.stages] == [1.0004, 0.0004]
        assert reloaded.total_duration == ramp.total_duration
