from __future__ import annotations

from datetime import datetime, timezone


def as_int(v: object) -> int:
    try:
        return int(str(v).strip())
    except Exception:
        return 0


def as_bool(v: object) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v or "").strip().lower()
    return s in {"1", "true", "yes", "y", "on"}


def int_list(obj: object) -> list[int]:
    """Positive ints from a list-ish value, de-duplicated, order kept."""
    if isinstance(obj, (str, int)):
        obj = [x for x in str(obj).split(",")]
    out: list[int] = []
    for x in (obj or []):  # type: ignore[union-attr]
        v = as_int(x)
        if v > 0:
            out.append(v)
    return list(dict.fromkeys(out))


def parse_dt_any(ts: str | int | float | datetime | None) -> datetime | None:
    """Parse ISO/unix-ish timestamps (or naive DB datetimes) into UTC datetime (best-effort)."""
    if ts is None or ts == "":
        return None
    try:
        if isinstance(ts, datetime):
            dt = ts
        elif isinstance(ts, (int, float)):
            val = float(ts)
            # Heuristic: treat large values as milliseconds.
            if abs(val) > 1.0e11:
                val = val / 1000.0
            return datetime.fromtimestamp(val, tz=timezone.utc)
        else:
            s = str(ts).strip()
            if not s:
                return None
            if "T" in s or "-" in s:
                dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
            else:
                val = float(s)
                if abs(val) > 1.0e11:
                    val = val / 1000.0
                return datetime.fromtimestamp(val, tz=timezone.utc)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except Exception:
        return None


def fmt_datetime_any(ts: str | int | float | datetime | None) -> str:
    """Human-friendly timestamp like 'Jan 08, 2026 03:04 PM UTC'."""
    dt = parse_dt_any(ts)
    if not dt:
        return "—"
    return dt.strftime("%b %d, %Y %I:%M %p UTC")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
