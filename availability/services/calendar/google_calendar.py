from datetime import timezone
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from starlette.concurrency import run_in_threadpool

from availability.core.exceptions import ProviderUnavailable
from availability.services.calendar.base import BusyTimeSource
from availability.services.scheduling.intervals import parse_timestamp


def _svc(credentials: Credentials):
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


class GoogleCalendarSource(BusyTimeSource):
    """
    Busy-time source backed by the Google Calendar v3 API.

    The API client is synchronous, so every round trip runs in the
    threadpool to keep the event loop free.
    """

    def __init__(self, default_calendar_id: str = "primary"):
        self.default_calendar_id = default_calendar_id

    def _calendar_ids(self, service) -> List[str]:
        ids = []
        request = service.calendarList().list()
        while request is not None:
            response = request.execute()
            ids.extend(item["id"] for item in response.get("items", []))
            request = service.calendarList().list_next(request, response)
        return ids

    def _query_freebusy(
        self,
        credentials: Credentials,
        window_start: str,
        window_end: str
    ) -> Dict[str, Any]:
        service = _svc(credentials)
        calendar_ids = self._calendar_ids(service) or [self.default_calendar_id]

        body = {
            "timeMin": window_start,
            "timeMax": window_end,
            "items": [{"id": calendar_id} for calendar_id in calendar_ids]
        }
        return service.freebusy().query(body=body).execute()

    def _fetch_events(
        self,
        credentials: Credentials,
        window_start: str,
        window_end: str,
        calendar_id: str
    ) -> Dict[str, Any]:
        return _svc(credentials).events().list(
            calendarId=calendar_id,
            timeMin=window_start,
            timeMax=window_end,
            singleEvents=True,
            orderBy="startTime"
        ).execute()

    async def get_all_busy_times(
        self,
        credentials: Credentials,
        window_start: str,
        window_end: str
    ) -> List[Dict[str, Any]]:
        try:
            freebusy_response = await run_in_threadpool(
                self._query_freebusy, credentials, window_start, window_end
            )
        except Exception as e:
            raise ProviderUnavailable(f"Failed to fetch busy times: {e}", cause=e) from e

        busy_times = []
        for calendar_id, calendar in freebusy_response.get("calendars", {}).items():
            errors = calendar.get("errors")
            if errors:
                # A calendar we could not read might hide a conflict
                raise ProviderUnavailable(
                    f"Free/busy lookup failed for calendar {calendar_id}: {errors}"
                )
            for busy in calendar.get("busy", []):
                busy_times.append({
                    "start": busy["start"],
                    "end": busy["end"],
                    "calendarId": calendar_id
                })

        # Sort by start time
        busy_times.sort(key=lambda busy: parse_timestamp(busy["start"], timezone.utc))
        return busy_times

    async def list_events(
        self,
        credentials: Credentials,
        window_start: str,
        window_end: str,
        calendar_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        try:
            events_result = await run_in_threadpool(
                self._fetch_events,
                credentials,
                window_start,
                window_end,
                calendar_id or self.default_calendar_id
            )
        except Exception as e:
            raise ProviderUnavailable(f"Failed to list calendar events: {e}", cause=e) from e

        return events_result.get("items", [])
