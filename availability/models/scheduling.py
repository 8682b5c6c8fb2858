from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class TimeInterval(BaseModel):
    """Half-open time range [start, end)"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> "TimeInterval":
        if self.start >= self.end:
            raise ValueError(f"start {self.start.isoformat()} must be before end {self.end.isoformat()}")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start


class BusyInterval(TimeInterval):
    """Busy period reported by the calendar provider"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    calendar_id: Optional[str] = Field(None, alias="calendarId")


class PreferredTimes(BaseModel):
    """Time-of-day and day-of-week preferences (0 = Sunday .. 6 = Saturday)"""
    model_config = ConfigDict(frozen=True)

    start_hour: Optional[int] = None
    end_hour: Optional[int] = None
    days_of_week: Optional[List[int]] = None


class SlotConstraints(PreferredTimes):
    """Constraints applied when packing candidate slots into free gaps"""
    duration_minutes: int
    break_minutes: int = 0

    @classmethod
    def build(
        cls,
        duration_minutes: int,
        break_minutes: int = 0,
        preferred_times: Optional[PreferredTimes] = None
    ) -> "SlotConstraints":
        preferred_times = preferred_times or PreferredTimes()
        return cls(
            duration_minutes=duration_minutes,
            break_minutes=break_minutes,
            start_hour=preferred_times.start_hour,
            end_hour=preferred_times.end_hour,
            days_of_week=preferred_times.days_of_week
        )


class AvailableSlot(BaseModel):
    """Model representing a free slot of fixed duration"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    duration_minutes: int


class ConflictingEvent(BaseModel):
    """Busy period overlapping a proposed time range"""
    model_config = ConfigDict(frozen=True)

    title: str
    start: str  # ISO format datetime, as reported by the provider
    end: str  # ISO format datetime, as reported by the provider
    calendar_name: Optional[str] = None


class ConflictResult(BaseModel):
    """Outcome of a conflict check"""
    model_config = ConfigDict(frozen=True)

    has_conflict: bool
    conflicting_events: List[ConflictingEvent] = Field(default_factory=list)
    suggested_alternatives: List[AvailableSlot] = Field(default_factory=list)


class StudyPlan(BaseModel):
    """Study sessions placed before a deadline, in chronological order"""
    model_config = ConfigDict(frozen=True)

    sessions: List[AvailableSlot] = Field(default_factory=list)
    requested_sessions: int
    session_duration_minutes: int

    @computed_field
    @property
    def shortfall(self) -> bool:
        """True when fewer sessions than requested fit before the deadline"""
        return len(self.sessions) < self.requested_sessions


class CalendarTokens(BaseModel):
    """OAuth tokens for the user's calendar provider"""
    access_token: str
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None  # epoch milliseconds
    token_type: Optional[str] = None
    scope: Optional[str] = None
