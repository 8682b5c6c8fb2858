from __future__ import annotations

import asyncio
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault(
    "AUDIT_LOG_PATH", str(Path(tempfile.gettempdir()) / "availability-tests" / "audit.log")
)
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")

from availability.services.calendar.base import BusyTimeSource  # noqa: E402


def run_async(coro):
    return asyncio.run(coro)


def dt(value: str) -> datetime:
    """Parse a test timestamp; naive values are UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def busy(start: str, end: str, calendar_id: str = "primary") -> Dict[str, str]:
    return {"start": start, "end": end, "calendarId": calendar_id}


def event(summary: str, start: str, end: str, key: str = "dateTime") -> Dict[str, Any]:
    return {"summary": summary, "start": {key: start}, "end": {key: end}}


class FakeBusyTimeSource(BusyTimeSource):
    """In-memory provider that records every call in order."""

    def __init__(
        self,
        busy_times: Optional[List[Dict[str, str]]] = None,
        events: Optional[List[Dict[str, Any]]] = None,
        fail_with: Optional[Exception] = None
    ):
        self.busy_times = list(busy_times or [])
        self.events = list(events or [])
        self.fail_with = fail_with
        self.calls: List[tuple] = []

    async def get_all_busy_times(self, credentials, window_start, window_end):
        self.calls.append(("busy", window_start, window_end))
        if self.fail_with is not None:
            raise self.fail_with
        start, end = dt(window_start), dt(window_end)
        # Touching intervals are returned too, like a provider querying inclusively
        return [
            item for item in self.busy_times
            if dt(item["start"]) <= end and dt(item["end"]) >= start
        ]

    async def list_events(self, credentials, window_start, window_end, calendar_id=None):
        self.calls.append(("events", window_start, window_end, calendar_id))
        return list(self.events)

    @property
    def busy_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] == "busy"]

    @property
    def event_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] == "events"]
