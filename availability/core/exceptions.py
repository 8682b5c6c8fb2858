from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling engine errors"""


class InvalidConstraints(SchedulingError):
    """Raised for malformed scheduling input, before any provider call is made"""


class ProviderUnavailable(SchedulingError):
    """
    Raised when busy times or events cannot be fetched from the calendar provider.

    The underlying failure is kept on ``cause`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
