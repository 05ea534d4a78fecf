# flowtasks/util/dates.py
from __future__ import annotations

import datetime as dt
import re
from typing import Optional

try:
    from zoneinfo import ZoneInfo
except Exception:  # pragma: no cover
    ZoneInfo = None  # type: ignore

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def normalize_tz_name(name: Optional[str]) -> str:
    """Canonical timezone name: "local", "UTC", an IANA name or a fixed offset."""
    if name is None:
        return "local"
    s = str(name).strip()
    if not s or s.lower() in {"local", "system"}:
        return "local"
    if s.lower() in {"utc", "z", "gmt"}:
        return "UTC"
    return s


def resolve_tz(name: Optional[str]) -> dt.tzinfo:
    """Resolve a timezone name; unknown identifiers raise ValueError."""
    tz_name = normalize_tz_name(name)
    if tz_name == "UTC":
        return dt.timezone.utc
    if tz_name == "local":
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc

    m = _OFFSET_RE.match(tz_name)
    if m:
        sign_s, hh_s, mm_s = m.groups()
        hh, mm = int(hh_s), int(mm_s)
        if hh > 23 or mm > 59:
            raise ValueError(f"Invalid timezone offset: {tz_name!r}")
        minutes = (hh * 60 + mm) * (1 if sign_s == "+" else -1)
        return dt.timezone(dt.timedelta(minutes=minutes))

    if ZoneInfo is None:
        raise ValueError(f"Invalid timezone identifier: {tz_name!r} (zoneinfo unavailable)")
    try:
        return ZoneInfo(tz_name)
    except Exception as ex:
        raise ValueError(f"Invalid timezone identifier: {tz_name!r}") from ex


def today_local(tz_name: Optional[str] = None) -> dt.date:
    return dt.datetime.now(tz=resolve_tz(tz_name)).date()


def today_local_iso(tz_name: Optional[str] = None) -> str:
    return today_local(tz_name).isoformat()


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_date(s: object) -> Optional[dt.date]:
    """Parse YYYY-MM-DD; anything else (including None) yields None."""
    if not isinstance(s, str) or not s.strip():
        return None
    parts = s.strip()[:10].split("-")
    if len(parts) != 3:
        return None
    try:
        y, m, d = (int(p) for p in parts)
        return dt.date(y, m, d)
    except ValueError:
        return None


def iso_from_date(d: Optional[dt.date]) -> str:
    return d.isoformat() if d else ""


def add_days(d: dt.date, n: int) -> dt.date:
    return d + dt.timedelta(days=int(n))


def start_of_week(d: dt.date) -> dt.date:
    # Weeks start on Monday.
    return d - dt.timedelta(days=d.weekday())


def end_of_week(d: dt.date) -> dt.date:
    return start_of_week(d) + dt.timedelta(days=6)


def start_of_month(d: dt.date) -> dt.date:
    return d.replace(day=1)


def end_of_month(d: dt.date) -> dt.date:
    nxt = d.replace(day=28) + dt.timedelta(days=4)
    return nxt - dt.timedelta(days=nxt.day)
