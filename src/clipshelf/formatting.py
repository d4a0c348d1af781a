from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

_HMS_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+(?:\.\d+)?)s)?$")
_SECONDS_RE = re.compile(r"^\d+(?:\.\d+)?s?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_KB = 1024
_MB = 1024 * 1024
_GB = 1024 * 1024 * 1024


def fmt_duration(secs: float | None) -> str | None:
    if not secs:
        return None
    minutes = int(secs // 60)
    seconds = int(secs % 60)
    return f"{minutes}:{seconds:02d}"


def fmt_size(size: int) -> str:
    if size < _MB:
        return f"{size / _KB:.0f} KB"
    if size < _GB:
        return f"{size / _MB:.1f} MB"
    return f"{size / _GB:.2f} GB"


def fmt_date(timestamp: float) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%b %d, %H:%M")


def fmt_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%H:%M")


def day_key(timestamp: float) -> str:
    """Calendar day (UTC) used to group clips on the timeline."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def fmt_day_label(key: str) -> str:
    try:
        day = datetime.strptime(key, "%Y-%m-%d")
    except ValueError:
        return key
    return day.strftime("%A, %B %d, %Y")


def parse_date(value: str, *, end_of_day: bool = False) -> float:
    text = value.strip()
    if not _DATE_RE.match(text):
        raise ValueError(f"Invalid date (use YYYY-MM-DD): {value}")
    try:
        day = datetime.strptime(text, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc
    stamp = day.timestamp()
    if end_of_day:
        stamp += 86400 - 1
    return stamp


def format_date_input(timestamp: float | None) -> str:
    if timestamp is None:
        return ""
    return day_key(timestamp)


def parse_time_token(token: str) -> float:
    """Seconds from ``90``, ``1:30``, ``0:01:30``, ``1m30s`` or ``2.5s``."""
    token = token.strip().lower()
    if not token:
        raise ValueError("Empty time token")

    if ":" in token:
        parts = token.split(":")
        if len(parts) == 2:
            hours_text, (minutes_text, seconds_text) = "0", parts
        elif len(parts) == 3:
            hours_text, minutes_text, seconds_text = parts
        else:
            raise ValueError(f"Invalid time token: {token}")
        if not (hours_text.isdigit() and minutes_text.isdigit()):
            raise ValueError(f"Invalid time token: {token}")
        total = int(hours_text) * 3600 + int(minutes_text) * 60 + _decimal(seconds_text)
        return round(total, 3)

    if _SECONDS_RE.match(token):
        return round(_decimal(token.removesuffix("s")), 3)

    match = _HMS_RE.match(token)
    if match and any(match.groups()):
        hours, minutes, seconds = match.groups()
        total = int(hours or 0) * 3600 + int(minutes or 0) * 60 + float(seconds or 0)
        return round(total, 3)

    raise ValueError(f"Invalid time token: {token}")


def format_seconds(value: float) -> str:
    if value != value:
        return "0"
    text = f"{round(value, 3):.3f}".rstrip("0").rstrip(".")
    return text or "0"


def _decimal(value: str) -> float:
    try:
        return float(Decimal(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid time token: {value}") from exc


_SPARK = "▁▂▃▄▅▆▇█"


def fmt_waveform(peaks: list[float], width: int) -> str:
    """Downsample peak amplitudes (0..1) into a block sparkline ``width`` cells wide."""
    if not peaks or width <= 0:
        return ""
    buckets = min(width, len(peaks))
    step = len(peaks) / buckets
    cells: list[str] = []
    for bucket in range(buckets):
        chunk = peaks[int(bucket * step) : max(int(bucket * step) + 1, int((bucket + 1) * step))]
        level = max(0.0, min(1.0, max(chunk)))
        cells.append(_SPARK[min(len(_SPARK) - 1, int(level * len(_SPARK)))])
    return "".join(cells)
