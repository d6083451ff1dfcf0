"""
Errors raised by the scheduling engine and their mapping onto API responses.
"""

import logging
from typing import Iterable, Optional

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.views import exception_handler


logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base class for scheduling engine errors."""


class ValidationRejected(SchedulingError, ValueError):
    """An operation was refused; the store is unchanged."""

    def __init__(self, reason: str, session_id: Optional[str] = None):
        self.reason = reason
        self.session_id = session_id
        message = f"Session {session_id}: {reason}" if session_id else reason
        super().__init__(message)


class SessionNotFound(SchedulingError, LookupError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} does not exist")


class ConfigurationIncomplete(SchedulingError):
    """Every configuration gap found before generation, reported together."""

    def __init__(self, gaps: Iterable[str]):
        self.gaps = list(gaps)
        super().__init__('\n'.join(self.gaps))


class NoValidCalendarRows(SchedulingError):
    def __init__(self, rows_processed: int):
        self.rows_processed = rows_processed
        super().__init__(
            f"No valid calendar days found in {rows_processed} row(s). "
            "Expected a description column (Description or I Semester), "
            "'From' and optional 'To' dates in DD.MM.YYYY format."
        )


class GenerationFailed(SchedulingError):
    """The pattern generator failed or returned unusable data."""

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(message)


class GenerationCancelled(GenerationFailed):
    def __init__(self):
        super().__init__("Schedule generation was cancelled before it was applied")


class ScheduleGenerationUnavailable(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Schedule generation failed.'
    default_code = 'generation_failed'


def scheduling_exception_handler(exc, context):
    """DRF exception handler translating engine errors into API errors."""
    if isinstance(exc, SessionNotFound):
        exc = NotFound(str(exc))
    elif isinstance(exc, ValidationRejected):
        detail = {'detail': exc.reason}
        if exc.session_id:
            detail['session_id'] = exc.session_id
        exc = ValidationError(detail)
    elif isinstance(exc, ConfigurationIncomplete):
        exc = ValidationError({'configuration': exc.gaps})
    elif isinstance(exc, NoValidCalendarRows):
        exc = ValidationError({'file': [str(exc)]})
    elif isinstance(exc, GenerationFailed):
        logger.warning("Schedule generation failed: %s", exc)
        exc = ScheduleGenerationUnavailable({'detail': str(exc), 'errors': exc.errors})

    return exception_handler(exc, context)
