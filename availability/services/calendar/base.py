from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class BusyTimeSource(ABC):
    """
    Calendar data provider consumed by the scheduling engine.

    Implementations must raise ProviderUnavailable on any fetch failure
    rather than returning partial data.
    """

    @abstractmethod
    async def get_all_busy_times(
        self,
        credentials: Any,
        window_start: str,
        window_end: str
    ) -> List[Dict[str, Any]]:
        """
        Return every busy period in the window across all accessible calendars.

        Args:
            credentials: Provider credentials for the user
            window_start: Window start in ISO format
            window_end: Window end in ISO format

        Returns:
            List of ``{"start", "end", "calendarId"}`` dictionaries
        """

    @abstractmethod
    async def list_events(
        self,
        credentials: Any,
        window_start: str,
        window_end: str,
        calendar_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Return events overlapping the window, optionally scoped to one calendar.

        Events follow the Google Calendar resource shape: ``summary`` plus
        ``start``/``end`` objects holding ``dateTime`` or ``date``.
        """
