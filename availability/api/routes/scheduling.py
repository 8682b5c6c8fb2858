from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from availability.core.exceptions import InvalidConstraints, ProviderUnavailable
from availability.models.scheduling import (
    AvailableSlot,
    CalendarTokens,
    ConflictResult,
    PreferredTimes,
    SlotConstraints,
    StudyPlan,
    TimeInterval
)
from availability.services.agents.scheduling_agent import SchedulingAgent
from availability.services.auth.google_auth import credentials_from_tokens
from availability.services.calendar.base import BusyTimeSource
from availability.services.calendar.google_calendar import GoogleCalendarSource
from availability.utils.audit_logger import audit_logger


router = APIRouter()


def get_busy_time_source() -> BusyTimeSource:
    return GoogleCalendarSource()


class CalendarRequest(BaseModel):
    """Base model for requests made on behalf of a calendar user"""
    user_id: str
    tokens: CalendarTokens


class WindowRequest(CalendarRequest):
    """Model for requests over a time window"""
    start: datetime
    end: datetime


class SlotSearchRequest(WindowRequest):
    """Model for available slot search"""
    constraints: SlotConstraints


class NextSlotRequest(CalendarRequest):
    """Model for next free slot search"""
    start_search_from: datetime
    duration_minutes: int
    break_minutes: int = 0
    preferred_times: Optional[PreferredTimes] = None
    max_search_days: Optional[int] = None
    end_search_at: Optional[datetime] = None


class AlternativesRequest(CalendarRequest):
    """Model for alternative slot suggestions"""
    preferred_start: datetime
    duration_minutes: int
    break_minutes: int = 0
    preferred_times: Optional[PreferredTimes] = None
    search_days: Optional[int] = None
    max_suggestions: Optional[int] = None


class ConflictCheckRequest(WindowRequest):
    """Model for conflict check request"""
    suggest_alternatives: bool = False


class StudyPlanRequest(CalendarRequest):
    """Model for study plan request"""
    deadline: datetime
    total_minutes: int
    session_duration_minutes: Optional[int] = None
    break_minutes: Optional[int] = None
    preferred_times: Optional[PreferredTimes] = None


def _agent(request: CalendarRequest, source: BusyTimeSource) -> SchedulingAgent:
    credentials = credentials_from_tokens(request.user_id, request.tokens)
    return SchedulingAgent(request.user_id, source, credentials)


def _raise_http(action: str, user_id: str, error: Exception):
    audit_logger.log(
        action=action,
        resource_type="calendar",
        status="failure",
        user_id=user_id,
        details={"error": str(error)}
    )
    if isinstance(error, InvalidConstraints):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(error)
        )
    if isinstance(error, ProviderUnavailable):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Calendar provider unavailable: {error}"
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to process scheduling request: {error}"
    )


@router.post("/slots", status_code=status.HTTP_200_OK)
async def find_available_slots(
    request: SlotSearchRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Find available slots of fixed duration within a time window.
    """
    try:
        slots = await _agent(request, source).find_available_slots(
            request.start, request.end, request.constraints
        )
    except Exception as e:
        _raise_http("available_slots_search", request.user_id, e)

    return {
        "status": "success",
        "slots": [slot.model_dump(mode="json") for slot in slots]
    }


@router.post("/slots/next", status_code=status.HTTP_200_OK)
async def find_next_free_slot(
    request: NextSlotRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Find the earliest free slot, scanning forward one day at a time.
    """
    try:
        slot = await _agent(request, source).find_next_free_slot(
            start_search_from=request.start_search_from,
            duration_minutes=request.duration_minutes,
            break_minutes=request.break_minutes,
            preferred_times=request.preferred_times,
            max_search_days=request.max_search_days,
            end_search_at=request.end_search_at
        )
    except Exception as e:
        _raise_http("next_free_slot_search", request.user_id, e)

    if slot is None:
        return {"status": "not_found", "slot": None}
    return {"status": "found", "slot": slot.model_dump(mode="json")}


@router.post("/slots/alternatives", response_model=List[AvailableSlot])
async def suggest_alternative_slots(
    request: AlternativesRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Suggest the free slots nearest to a preferred start time.
    """
    try:
        return await _agent(request, source).suggest_alternative_slots(
            preferred_start=request.preferred_start,
            duration_minutes=request.duration_minutes,
            preferred_times=request.preferred_times,
            break_minutes=request.break_minutes,
            search_days=request.search_days,
            max_suggestions=request.max_suggestions
        )
    except Exception as e:
        _raise_http("alternative_slots_suggestion", request.user_id, e)


@router.post("/conflicts/check", response_model=ConflictResult)
async def check_conflicts(
    request: ConflictCheckRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Check a proposed time range for conflicts with existing events.
    """
    try:
        return await _agent(request, source).check_conflicts(
            request.start, request.end, suggest_alternatives=request.suggest_alternatives
        )
    except Exception as e:
        _raise_http("conflict_check", request.user_id, e)


@router.post("/availability", status_code=status.HTTP_200_OK)
async def check_availability(
    request: WindowRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Check whether a time range is completely free.
    """
    try:
        available = await _agent(request, source).is_slot_available(request.start, request.end)
    except Exception as e:
        _raise_http("slot_availability_check", request.user_id, e)

    return {"available": available}


@router.post("/busy", response_model=List[TimeInterval])
async def get_busy_times(
    request: WindowRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Get merged busy periods across all of the user's calendars.
    """
    try:
        return await _agent(request, source).get_merged_busy_times(request.start, request.end)
    except Exception as e:
        _raise_http("busy_times_lookup", request.user_id, e)


@router.post("/study-plan", response_model=StudyPlan)
async def calculate_study_plan(
    request: StudyPlanRequest,
    source: BusyTimeSource = Depends(get_busy_time_source)
):
    """
    Distribute study sessions across the days before a deadline.

    A plan shorter than requested is returned with ``shortfall`` set.
    """
    try:
        return await _agent(request, source).calculate_study_plan(
            deadline=request.deadline,
            total_minutes=request.total_minutes,
            session_duration_minutes=request.session_duration_minutes,
            break_minutes=request.break_minutes,
            preferred_times=request.preferred_times
        )
    except Exception as e:
        _raise_http("study_plan_calculation", request.user_id, e)
