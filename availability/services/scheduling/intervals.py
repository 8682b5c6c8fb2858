from datetime import date, datetime, time, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from availability.models.scheduling import TimeInterval


def ensure_aware(value: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to naive datetimes; aware datetimes are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def parse_timestamp(value: str, tz: tzinfo) -> datetime:
    """
    Parse an ISO-8601 timestamp or date string.

    Date-only values (all-day events) resolve to midnight in ``tz``.
    """
    if "T" not in value:
        return datetime.combine(date.fromisoformat(value), time.min, tzinfo=tz)
    return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")), tz)


def event_boundary(event: Dict[str, Any], key: str, tz: tzinfo) -> Optional[datetime]:
    """Read the ``start``/``end`` of a Google event resource, if present"""
    boundary = event.get(key) or {}
    value = boundary.get("dateTime") or boundary.get("date")
    if not value:
        return None
    return parse_timestamp(value, tz)


def merge_busy_intervals(intervals: Iterable[TimeInterval]) -> List[TimeInterval]:
    """
    Collapse overlapping or touching busy intervals into disjoint blocks.

    Touching intervals (``next.start == current.end``) are merged so that
    back-to-back meetings never leave a zero-length gap. Output is sorted
    by start; the sort is stable, so equal starts keep their input order.
    """
    merged: List[TimeInterval] = []
    for interval in sorted(intervals, key=lambda item: item.start):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(start=last.start, end=interval.end)
        else:
            merged.append(TimeInterval(start=interval.start, end=interval.end))
    return merged
