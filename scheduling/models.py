"""
Domain models for the training scheduling engine.

The engine keeps its state in memory (see store.SessionStore):
- TrainingSession is one concrete, dated session
- SessionTemplate is one entry of a generated weekly pattern
- AcademicCalendarDay classifies a single almanac date
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import models

from .time_utils import is_valid_clock, to_minutes


class SessionStatus(models.TextChoices):
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    COMPLETED = 'COMPLETED', 'Completed'
    VERIFIED = 'VERIFIED', 'Verified'
    CANCELLED = 'CANCELLED', 'Cancelled'


class DayType(models.TextChoices):
    INSTRUCTION = 'INSTRUCTION', 'Instruction'
    HOLIDAY = 'HOLIDAY', 'Holiday'
    EXAM = 'EXAM', 'Exam'


class Weekday(models.IntegerChoices):
    SUNDAY = 0, 'Sunday'
    MONDAY = 1, 'Monday'
    TUESDAY = 2, 'Tuesday'
    WEDNESDAY = 3, 'Wednesday'
    THURSDAY = 4, 'Thursday'
    FRIDAY = 5, 'Friday'
    SATURDAY = 6, 'Saturday'

    @classmethod
    def of(cls, day: date) -> 'Weekday':
        """Weekday of a calendar date (0=Sunday, 6=Saturday)."""
        return cls(day.isoweekday() % 7)


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class TrainingSession:
    """
    A scheduled teaching event.

    Verification fields stay None until the session is VERIFIED and
    cancellation_reason stays None unless it is CANCELLED.
    """

    topic: str
    batch: str
    year: int
    venue: str
    date: date
    start_time: str
    end_time: str
    trainer_id: str = ''
    trainer_name: str = ''
    planned_topics: List[str] = field(default_factory=list)
    is_placement_drive: bool = False
    status: str = SessionStatus.SCHEDULED
    id: str = field(default_factory=new_session_id)

    cancellation_reason: Optional[str] = None

    actual_start_time: Optional[str] = None
    actual_end_time: Optional[str] = None
    topic_covered: Optional[bool] = None
    verified_topics: Optional[List[str]] = None
    is_late: Optional[bool] = None

    def __str__(self):
        status_str = f" [{self.status}]" if self.status != SessionStatus.SCHEDULED else ""
        return (
            f"{self.topic} ({self.batch}) @ {self.venue} - "
            f"{self.date.isoformat()} {self.start_time}-{self.end_time}{status_str}"
        )

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)

    @property
    def available_topics(self) -> List[str]:
        """Distinct topics a verifier can confirm; the main topic when none were planned."""
        return list(dict.fromkeys(self.planned_topics)) if self.planned_topics else [self.topic]

    @property
    def is_unassigned(self) -> bool:
        return not (self.trainer_name or '').strip()

    def copy(self, **changes) -> 'TrainingSession':
        """Return a detached copy, optionally with some fields changed."""
        changes.setdefault('planned_topics', list(self.planned_topics))
        if self.verified_topics is not None:
            changes.setdefault('verified_topics', list(self.verified_topics))
        return replace(self, **changes)

    def clean(self):
        """Validate session data."""
        errors = {}

        for field_name in ('topic', 'batch', 'venue'):
            if not (getattr(self, field_name) or '').strip():
                errors[field_name] = f'{field_name.capitalize()} is required.'

        if not isinstance(self.year, int) or not 1 <= self.year <= 4:
            errors['year'] = 'Year must be between 1 and 4.'

        if not is_valid_clock(self.start_time):
            errors['start_time'] = f'Invalid start time {self.start_time!r}.'
        if not is_valid_clock(self.end_time):
            errors['end_time'] = f'Invalid end time {self.end_time!r}.'
        if not errors.keys() & {'start_time', 'end_time'} and self.start_minutes >= self.end_minutes:
            errors['end_time'] = 'End time must be after start time.'

        if self.status not in SessionStatus.values:
            errors['status'] = f'Unknown status {self.status!r}.'

        verified = self.status == SessionStatus.VERIFIED
        if not verified and any(
            value is not None for value in (
                self.actual_start_time, self.actual_end_time, self.topic_covered,
                self.verified_topics, self.is_late,
            )
        ):
            errors['status'] = 'Verification data is only allowed on verified sessions.'

        cancelled = self.status == SessionStatus.CANCELLED
        if cancelled and not (self.cancellation_reason or '').strip():
            errors['cancellation_reason'] = 'Cancelled sessions need a reason.'
        if not cancelled and self.cancellation_reason is not None:
            errors['cancellation_reason'] = 'Only cancelled sessions carry a reason.'

        if errors:
            raise ValidationError(errors)


@dataclass
class SessionTemplate:
    """
    One entry of a representative week.

    The weekday says which calendar weekday slot the template fills; it has
    no date of its own.
    """

    topic: str
    batch: str
    year: int
    venue: str
    weekday: int
    start_time: str
    end_time: str
    trainer_id: str = ''
    trainer_name: str = ''
    planned_topics: List[str] = field(default_factory=list)
    is_placement_drive: bool = False

    def __str__(self):
        return f"{self.topic} ({self.batch}) - Every {self.weekday_name} {self.start_time}-{self.end_time}"

    @property
    def weekday_name(self) -> str:
        return Weekday(self.weekday).label

    def materialize(self, on_date: date) -> TrainingSession:
        """Create a fresh scheduled session from this template on a concrete date."""
        return TrainingSession(
            topic=self.topic,
            batch=self.batch,
            year=self.year,
            venue=self.venue,
            date=on_date,
            start_time=self.start_time,
            end_time=self.end_time,
            trainer_id=self.trainer_id,
            trainer_name=self.trainer_name,
            planned_topics=list(self.planned_topics),
            is_placement_drive=self.is_placement_drive,
            status=SessionStatus.SCHEDULED,
        )


@dataclass(frozen=True)
class AcademicCalendarDay:
    """One almanac date and the event governing it."""

    date: date
    day_type: str
    description: str

    def __str__(self):
        return f"{self.date.isoformat()} ({self.day_of_week}) {self.day_type}: {self.description}"

    @property
    def weekday(self) -> Weekday:
        return Weekday.of(self.date)

    @property
    def day_of_week(self) -> str:
        return self.weekday.label

    @property
    def is_instruction(self) -> bool:
        return self.day_type == DayType.INSTRUCTION
