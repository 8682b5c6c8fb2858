import math
from datetime import datetime, time, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from availability.core.config import settings
from availability.core.exceptions import InvalidConstraints, ProviderUnavailable
from availability.models.scheduling import (
    AvailableSlot,
    BusyInterval,
    ConflictingEvent,
    ConflictResult,
    PreferredTimes,
    SlotConstraints,
    StudyPlan,
    TimeInterval
)
from availability.services.calendar.base import BusyTimeSource
from availability.services.scheduling.intervals import (
    ensure_aware,
    event_boundary,
    merge_busy_intervals
)
from availability.services.scheduling.slots import (
    generate_slots,
    validate_constraints,
    validate_window
)
from availability.utils.audit_logger import audit_logger


class SchedulingAgent:
    """
    Agent turning a user's calendar busy times into schedulable free time.

    All provider calls are awaited one at a time and in chronological order.
    Provider failures are audit-logged and re-raised; they never degrade into
    an empty busy list.
    """

    def __init__(
        self,
        user_id: str,
        source: BusyTimeSource,
        credentials: Any = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the scheduling agent for one user.

        Args:
            user_id: The ID of the user whose calendars are being read
            source: Calendar provider to fetch busy times and events from
            credentials: Provider credentials, passed through on every fetch
            tz: Timezone for day boundaries and hour/weekday filters
            clock: Returns the current time; used by study plans
        """
        self.user_id = user_id
        self.source = source
        self.credentials = credentials
        self.tz = tz or settings.timezone
        self.clock = clock or (lambda: datetime.now(self.tz))

    def _failure(self, action: str, start: datetime, end: datetime, error: Exception):
        audit_logger.log(
            action=action,
            resource_type="calendar",
            status="failure",
            user_id=self.user_id,
            details={
                "error": str(error),
                "window_start": start.isoformat(),
                "window_end": end.isoformat()
            }
        )

    async def _fetch_busy_times(
        self,
        action: str,
        start: datetime,
        end: datetime
    ) -> List[Dict[str, Any]]:
        try:
            return await self.source.get_all_busy_times(
                self.credentials, start.isoformat(), end.isoformat()
            )
        except Exception as e:
            self._failure(action, start, end, e)
            raise

    async def _list_events(
        self,
        action: str,
        busy: BusyInterval,
        raw: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        try:
            return await self.source.list_events(
                self.credentials, raw["start"], raw["end"], busy.calendar_id
            )
        except Exception as e:
            self._failure(action, busy.start, busy.end, e)
            raise

    def _to_busy(self, raw: Dict[str, Any]) -> BusyInterval:
        try:
            busy = BusyInterval.model_validate(raw)
        except (ValidationError, TypeError) as e:
            raise ProviderUnavailable(f"Malformed busy period from provider: {raw}", cause=e) from e
        return busy.model_copy(update={
            "start": ensure_aware(busy.start, self.tz),
            "end": ensure_aware(busy.end, self.tz)
        })

    async def _available_slots(
        self,
        action: str,
        start: datetime,
        end: datetime,
        constraints: SlotConstraints
    ) -> List[AvailableSlot]:
        raw = await self._fetch_busy_times(action, start, end)
        merged = merge_busy_intervals(self._to_busy(item) for item in raw)
        return generate_slots(TimeInterval(start=start, end=end), merged, constraints, self.tz)

    async def find_available_slots(
        self,
        start: datetime,
        end: datetime,
        constraints: SlotConstraints
    ) -> List[AvailableSlot]:
        """
        Find free slots of fixed duration within a window.

        Args:
            start: Window start
            end: Window end
            constraints: Slot duration, break spacing and time filters

        Returns:
            Available slots in chronological order
        """
        start = ensure_aware(start, self.tz)
        end = ensure_aware(end, self.tz)
        validate_window(start, end)
        validate_constraints(constraints)

        slots = await self._available_slots("available_slots_search", start, end, constraints)

        audit_logger.log(
            action="available_slots_search",
            resource_type="calendar",
            status="success",
            user_id=self.user_id,
            details={
                "window_start": start.isoformat(),
                "window_end": end.isoformat(),
                "duration_minutes": constraints.duration_minutes,
                "available_slots_count": len(slots)
            }
        )
        return slots

    async def get_merged_busy_times(self, start: datetime, end: datetime) -> List[TimeInterval]:
        """Busy blocks in the window across all calendars, merged."""
        start = ensure_aware(start, self.tz)
        end = ensure_aware(end, self.tz)
        validate_window(start, end)

        raw = await self._fetch_busy_times("busy_times_lookup", start, end)
        return merge_busy_intervals(self._to_busy(item) for item in raw)

    async def find_next_free_slot(
        self,
        start_search_from: datetime,
        duration_minutes: int,
        break_minutes: int = 0,
        preferred_times: Optional[PreferredTimes] = None,
        max_search_days: Optional[int] = None,
        end_search_at: Optional[datetime] = None
    ) -> Optional[AvailableSlot]:
        """
        Find the earliest free slot, scanning one day at a time.

        The scan stops at ``end_search_at`` or ``max_search_days`` after the
        start, whichever comes first.

        Returns:
            The first available slot, or None when the horizon is exhausted
        """
        if max_search_days is None:
            max_search_days = settings.MAX_SEARCH_DAYS
        if max_search_days <= 0:
            raise InvalidConstraints(f"max_search_days must be positive, got {max_search_days}")

        constraints = SlotConstraints.build(duration_minutes, break_minutes, preferred_times)
        validate_constraints(constraints)

        start = ensure_aware(start_search_from, self.tz)
        horizon = start + timedelta(days=max_search_days)
        if end_search_at is not None:
            end_search_at = ensure_aware(end_search_at, self.tz)
            validate_window(start, end_search_at)
            horizon = min(horizon, end_search_at)

        current = start
        while current < horizon:
            window_end = min(current + timedelta(days=1), horizon)
            slots = await self._available_slots("next_free_slot_search", current, window_end, constraints)
            if slots:
                audit_logger.log(
                    action="next_free_slot_search",
                    resource_type="calendar",
                    status="success",
                    user_id=self.user_id,
                    details={"slot_start": slots[0].start.isoformat()}
                )
                return slots[0]
            current = window_end

        audit_logger.log(
            action="next_free_slot_search",
            resource_type="calendar",
            status="not_found",
            user_id=self.user_id,
            details={
                "search_start": start.isoformat(),
                "search_end": horizon.isoformat(),
                "duration_minutes": duration_minutes
            }
        )
        return None

    async def is_slot_available(self, start: datetime, end: datetime) -> bool:
        """Whether no busy period on any calendar overlaps [start, end)."""
        start = ensure_aware(start, self.tz)
        end = ensure_aware(end, self.tz)
        validate_window(start, end)

        raw = await self._fetch_busy_times("slot_availability_check", start, end)
        return not any(self._to_busy(item).overlaps(start, end) for item in raw)

    async def check_conflicts(
        self,
        start: datetime,
        end: datetime,
        suggest_alternatives: bool = False
    ) -> ConflictResult:
        """
        Check a proposed time range against existing busy periods.

        Each conflicting busy period is enriched with the title of the event
        whose start and end match it exactly; otherwise it is labelled with
        the fallback title.

        Args:
            start: Proposed start
            end: Proposed end
            suggest_alternatives: Attach alternative slots when a conflict is found

        Returns:
            ConflictResult, with conflicts in the order the provider returned them
        """
        start = ensure_aware(start, self.tz)
        end = ensure_aware(end, self.tz)
        validate_window(start, end)

        raw_busy = await self._fetch_busy_times("conflict_check", start, end)

        conflicts = []
        for raw in raw_busy:
            busy = self._to_busy(raw)
            if not busy.overlaps(start, end):
                continue

            events = await self._list_events("conflict_check", busy, raw)
            title = settings.BUSY_FALLBACK_TITLE
            for event in events:
                if (event_boundary(event, "start", self.tz) == busy.start
                        and event_boundary(event, "end", self.tz) == busy.end):
                    title = event.get("summary") or settings.BUSY_FALLBACK_TITLE
                    break

            conflicts.append(ConflictingEvent(
                title=title,
                start=raw["start"],
                end=raw["end"],
                calendar_name=busy.calendar_id
            ))

        alternatives = []
        duration_minutes = int((end - start).total_seconds() // 60)
        if conflicts and suggest_alternatives and duration_minutes > 0:
            alternatives = await self.suggest_alternative_slots(start, duration_minutes)

        audit_logger.log(
            action="conflict_check",
            resource_type="calendar",
            status="success",
            user_id=self.user_id,
            details={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "conflicts_count": len(conflicts)
            }
        )

        return ConflictResult(
            has_conflict=bool(conflicts),
            conflicting_events=conflicts,
            suggested_alternatives=alternatives
        )

    async def suggest_alternative_slots(
        self,
        preferred_start: datetime,
        duration_minutes: int,
        preferred_times: Optional[PreferredTimes] = None,
        break_minutes: int = 0,
        search_days: Optional[int] = None,
        max_suggestions: Optional[int] = None
    ) -> List[AvailableSlot]:
        """
        Suggest free slots closest to a preferred start time.

        Returns:
            At most ``max_suggestions`` slots, nearest first
        """
        if search_days is None:
            search_days = settings.ALTERNATIVE_SEARCH_DAYS
        if max_suggestions is None:
            max_suggestions = settings.MAX_SUGGESTIONS
        if search_days <= 0:
            raise InvalidConstraints(f"search_days must be positive, got {search_days}")
        if max_suggestions <= 0:
            raise InvalidConstraints(f"max_suggestions must be positive, got {max_suggestions}")

        constraints = SlotConstraints.build(duration_minutes, break_minutes, preferred_times)
        validate_constraints(constraints)

        preferred_start = ensure_aware(preferred_start, self.tz)
        search_end = preferred_start + timedelta(days=search_days)

        slots = await self._available_slots(
            "alternative_slots_suggestion", preferred_start, search_end, constraints
        )
        # Stable sort: equal distances keep the earlier slot first
        slots.sort(key=lambda slot: abs(slot.start - preferred_start))
        suggestions = slots[:max_suggestions]

        audit_logger.log(
            action="alternative_slots_suggestion",
            resource_type="calendar",
            status="success",
            user_id=self.user_id,
            details={
                "preferred_start": preferred_start.isoformat(),
                "suggestions_count": len(suggestions)
            }
        )
        return suggestions

    async def calculate_study_plan(
        self,
        deadline: datetime,
        total_minutes: int,
        session_duration_minutes: Optional[int] = None,
        break_minutes: Optional[int] = None,
        preferred_times: Optional[PreferredTimes] = None
    ) -> StudyPlan:
        """
        Spread study sessions over the days left before a deadline.

        Sessions are placed greedily, earliest slot first, one calendar day
        at a time, with at most an even share of sessions per day. A plan
        with fewer sessions than requested is returned as a shortfall.

        Args:
            deadline: Task deadline
            total_minutes: Total study time needed
            session_duration_minutes: Length of each session
            break_minutes: Minimum gap between sessions and after busy periods
            preferred_times: Daily study hours and allowed weekdays

        Returns:
            StudyPlan in chronological order
        """
        if session_duration_minutes is None:
            session_duration_minutes = settings.DEFAULT_SESSION_MINUTES
        if break_minutes is None:
            break_minutes = settings.DEFAULT_STUDY_BREAK_MINUTES
        preferred_times = preferred_times or PreferredTimes()
        if total_minutes <= 0:
            raise InvalidConstraints(f"total_minutes must be positive, got {total_minutes}")

        start_hour = preferred_times.start_hour
        if start_hour is None:
            start_hour = settings.STUDY_START_HOUR
        end_hour = preferred_times.end_hour
        if end_hour is None:
            end_hour = settings.STUDY_END_HOUR

        constraints = SlotConstraints(
            duration_minutes=session_duration_minutes,
            break_minutes=break_minutes,
            start_hour=start_hour,
            end_hour=end_hour,
            days_of_week=preferred_times.days_of_week
        )
        validate_constraints(constraints)

        deadline = ensure_aware(deadline, self.tz)
        now = ensure_aware(self.clock(), self.tz)

        session_count = math.ceil(total_minutes / session_duration_minutes)
        days_until_deadline = max(math.ceil((deadline - now) / timedelta(days=1)), 1)
        sessions_per_day = math.ceil(session_count / days_until_deadline)

        sessions: List[AvailableSlot] = []
        current = now
        while len(sessions) < session_count and current < deadline:
            midnight = datetime.combine(current.astimezone(self.tz).date(), time.min, tzinfo=self.tz)
            day_start = max(midnight + timedelta(hours=start_hour), now)
            day_end = min(midnight + timedelta(hours=end_hour), deadline)

            if day_start < day_end:
                day_slots = await self._available_slots(
                    "study_plan_calculation", day_start, day_end, constraints
                )
                take = min(sessions_per_day, len(day_slots), session_count - len(sessions))
                sessions.extend(day_slots[:take])
                logger.debug(f"Placed {take} study sessions on {midnight.date().isoformat()}")

            current += timedelta(days=1)

        plan = StudyPlan(
            sessions=sessions,
            requested_sessions=session_count,
            session_duration_minutes=session_duration_minutes
        )

        audit_logger.log(
            action="study_plan_calculation",
            resource_type="study_plan",
            status="shortfall" if plan.shortfall else "success",
            user_id=self.user_id,
            details={
                "deadline": deadline.isoformat(),
                "requested_sessions": session_count,
                "scheduled_sessions": len(sessions)
            }
        )
        return plan
