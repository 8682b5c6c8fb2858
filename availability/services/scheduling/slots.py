from datetime import datetime, timedelta, tzinfo
from typing import Iterator, List, Optional

from loguru import logger

from availability.core.exceptions import InvalidConstraints
from availability.models.scheduling import (
    AvailableSlot,
    PreferredTimes,
    SlotConstraints,
    TimeInterval
)


def validate_window(start: datetime, end: datetime) -> None:
    if start >= end:
        raise InvalidConstraints(
            f"Window start {start.isoformat()} must be before end {end.isoformat()}"
        )


def validate_preferred_times(preferred_times: Optional[PreferredTimes]) -> None:
    if preferred_times is None:
        return
    for name in ("start_hour", "end_hour"):
        hour = getattr(preferred_times, name)
        if hour is not None and not 0 <= hour <= 24:
            raise InvalidConstraints(f"{name} must be between 0 and 24, got {hour}")
    start_hour, end_hour = preferred_times.start_hour, preferred_times.end_hour
    if start_hour is not None and end_hour is not None and start_hour > end_hour:
        raise InvalidConstraints(
            f"start_hour {start_hour} must not be after end_hour {end_hour}"
        )
    invalid_days = [
        day for day in preferred_times.days_of_week or [] if not 0 <= day <= 6
    ]
    if invalid_days:
        raise InvalidConstraints(f"days_of_week must be between 0 and 6, got {invalid_days}")


def validate_constraints(constraints: SlotConstraints) -> None:
    """Raise InvalidConstraints for malformed slot constraints"""
    if constraints.duration_minutes <= 0:
        raise InvalidConstraints(
            f"duration_minutes must be positive, got {constraints.duration_minutes}"
        )
    if constraints.break_minutes < 0:
        raise InvalidConstraints(
            f"break_minutes must not be negative, got {constraints.break_minutes}"
        )
    validate_preferred_times(constraints)


def weekday_index(value: datetime) -> int:
    """Day of week with 0 = Sunday .. 6 = Saturday"""
    return value.isoweekday() % 7


def is_within_constraints(
    start: datetime,
    end: datetime,
    constraints: PreferredTimes,
    tz: tzinfo
) -> bool:
    """
    Check a slot against day-of-week and time-of-day constraints.

    Hours and weekdays are read in ``tz``. A slot may end exactly on
    ``end_hour`` (minute zero) but not run past it.
    """
    local_start = start.astimezone(tz)
    local_end = end.astimezone(tz)

    if constraints.days_of_week and weekday_index(local_start) not in constraints.days_of_week:
        return False

    if constraints.start_hour is not None and local_start.hour < constraints.start_hour:
        return False

    if constraints.end_hour is not None:
        if local_end.hour > constraints.end_hour:
            return False
        if local_end.hour == constraints.end_hour and local_end.minute > 0:
            return False

    return True


def _pack_gap(
    gap_start: datetime,
    gap_end: datetime,
    constraints: SlotConstraints,
    tz: tzinfo
) -> Iterator[AvailableSlot]:
    duration = timedelta(minutes=constraints.duration_minutes)
    pause = timedelta(minutes=constraints.break_minutes)

    slot_start = gap_start
    while slot_start + duration <= gap_end:
        slot_end = slot_start + duration
        # Rejected slots still consume their position in the gap
        if is_within_constraints(slot_start, slot_end, constraints, tz):
            yield AvailableSlot(
                start=slot_start,
                end=slot_end,
                duration_minutes=constraints.duration_minutes
            )
        slot_start = slot_end + pause


def generate_slots(
    window: TimeInterval,
    busy: List[TimeInterval],
    constraints: SlotConstraints,
    tz: tzinfo
) -> List[AvailableSlot]:
    """
    Pack fixed-length slots into the free gaps of ``window``.

    Args:
        window: Bounding time range to search
        busy: Merged busy intervals, sorted and disjoint
        constraints: Slot duration, break spacing and time filters
        tz: Timezone used for hour-of-day and weekday filters

    Returns:
        Slots in chronological order
    """
    pause = timedelta(minutes=constraints.break_minutes)
    slots: List[AvailableSlot] = []
    cursor = window.start

    for interval in busy:
        if cursor >= window.end:
            break
        if cursor < interval.start:
            gap_end = min(interval.start, window.end)
            slots.extend(_pack_gap(cursor, gap_end, constraints, tz))
        cursor = max(interval.end + pause, cursor)

    if cursor < window.end:
        slots.extend(_pack_gap(cursor, window.end, constraints, tz))

    logger.debug(
        f"Generated {len(slots)} slots of {constraints.duration_minutes} min "
        f"in {window.start.isoformat()}..{window.end.isoformat()} "
        f"around {len(busy)} busy blocks"
    )
    return slots
