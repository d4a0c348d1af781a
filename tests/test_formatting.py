import pytest

from clipshelf.formatting import (
    day_key,
    fmt_date,
    fmt_day_label,
    fmt_duration,
    fmt_size,
    fmt_waveform,
    format_date_input,
    format_seconds,
    parse_date,
    parse_time_token,
)


def test_fmt_duration() -> None:
    assert fmt_duration(90) == "1:30"
    assert fmt_duration(5.9) == "0:05"
    assert fmt_duration(0) is None
    assert fmt_duration(None) is None


def test_fmt_size_units() -> None:
    assert fmt_size(512 * 1024) == "512 KB"
    assert fmt_size(int(1.5 * 1024 * 1024)) == "1.5 MB"
    assert fmt_size(2 * 1024 * 1024 * 1024) == "2.00 GB"


def test_dates_are_utc() -> None:
    assert fmt_date(0) == "Jan 01, 00:00"
    assert day_key(86_399) == "1970-01-01"
    assert day_key(86_400) == "1970-01-02"
    assert fmt_day_label("2024-03-05") == "Tuesday, March 05, 2024"
    assert fmt_day_label("garbage") == "garbage"


def test_parse_date_bounds() -> None:
    assert parse_date("2024-01-01") == 1_704_067_200
    assert parse_date("2024-01-01", end_of_day=True) == 1_704_067_200 + 86_399
    assert format_date_input(1_704_067_200) == "2024-01-01"
    assert format_date_input(None) == ""


@pytest.mark.parametrize("value", ["2024-1-1", "2024-02-30", "yesterday"])
def test_parse_date_rejects(value: str) -> None:
    with pytest.raises(ValueError):
        parse_date(value)


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("90", 90.0),
        ("1:30", 90.0),
        ("0:01:30.5", 90.5),
        ("1m30s", 90.0),
        ("2.5s", 2.5),
        ("1h", 3600.0),
    ],
)
def test_parse_time_token(token: str, expected: float) -> None:
    assert parse_time_token(token) == expected


@pytest.mark.parametrize("token", ["", "abc", "1:2:3:4", "a:10"])
def test_parse_time_token_rejects(token: str) -> None:
    with pytest.raises(ValueError):
        parse_time_token(token)


def test_format_seconds() -> None:
    assert format_seconds(1.5) == "1.5"
    assert format_seconds(2.0) == "2"
    assert format_seconds(float("nan")) == "0"


def test_fmt_waveform() -> None:
    assert fmt_waveform([0.0, 0.5, 1.0], 3) == "▁▅█"
    assert fmt_waveform([0.0, 1.0, 0.0, 0.2], 2) == "█▂"
    assert fmt_waveform([], 10) == ""
    assert len(fmt_waveform([0.3] * 100, 20)) == 20
