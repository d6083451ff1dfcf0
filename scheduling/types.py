"""
Data types and constants for the training scheduling engine.

This module contains:
- DTOs (Data Transfer Objects) for service layer operations
- The configuration bundle handed to the pattern generator
- Constants used across the application
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from .models import AcademicCalendarDay, DayType, TrainingSession, Weekday


REST_DAY = Weekday.SUNDAY

SPREADSHEET_EPOCH = date(1899, 12, 30)

DESCRIPTION_COLUMNS: Tuple[str, ...] = ('I Semester', 'II Semester', 'Event', 'Description')
FROM_COLUMNS: Tuple[str, ...] = ('From', 'Start Date')
TO_COLUMNS: Tuple[str, ...] = ('To', 'End Date')

# First match wins, checked against the lower-cased event description.
EVENT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (DayType.EXAM, ('exam', 'submission')),
    (DayType.HOLIDAY, ('vacation', 'break', 'preparation')),
    (DayType.INSTRUCTION, ('instruction',)),
)

TRAINER_TYPES = ('INTERNAL', 'EXTERNAL', 'VENDOR')
TRAINING_TYPES = ('REGULAR', 'ADVANCED')
DAY_SESSIONS = ('FN', 'AN', 'FULL_DAY')


@dataclass
class SessionUpdateData:
    """DTO for session edit operations."""
    topic: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: Optional[str] = None
    date: Optional['date'] = None
    trainer_id: Optional[str] = None
    trainer_name: Optional[str] = None
    planned_topics: Optional[List[str]] = None

    def changes_placement(self) -> bool:
        """True when the edit may move the session onto another slot."""
        return any(
            value is not None
            for value in (self.start_time, self.end_time, self.venue, self.date)
        )


@dataclass
class RejectedSession:
    """A session refused by bulk insert, with the session that blocked it."""
    session: TrainingSession
    conflicts_with: Optional[TrainingSession]
    reason: str


@dataclass
class BulkInsertResult:
    """Outcome of a bulk insert: what was committed and what was refused."""
    inserted: List[TrainingSession] = field(default_factory=list)
    rejected: List[RejectedSession] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.rejected)


@dataclass
class CalendarImportResult:
    """Expanded almanac plus the counts reported back to the operator."""
    days: List[AcademicCalendarDay]
    rows_processed: int
    rows_skipped: int = 0
    duplicate_dates: List[date] = field(default_factory=list)

    @property
    def total_days(self) -> int:
        return len(self.days)

    @property
    def instruction_days(self) -> int:
        return sum(1 for day in self.days if day.is_instruction)


@dataclass
class Student:
    roll_no: str
    name: str


@dataclass
class TrainerMapping:
    trainer_id: str
    name: str
    type: str
    courses: List[str] = field(default_factory=list)


@dataclass
class VenueMapping:
    id: str
    name: str
    department: str
    poc: str = ''
    is_exclusive_tnp: bool = False
    capacity: int = 0


@dataclass
class CurriculumMapping:
    department: str
    semester: int
    courses: List[str] = field(default_factory=list)


@dataclass
class TimingRule:
    semester: int
    session: str
    start_time: str
    end_time: str


@dataclass
class TrainingTypeMapping:
    training_type: str
    course: str
    allowed_trainer_types: List[str] = field(default_factory=list)


@dataclass
class SectionDetails:
    id: str
    department: str
    section: str
    semester: int
    total_strength: int = 0
    students: List[Student] = field(default_factory=list)


@dataclass
class GenerationConfig:
    """Everything the pattern generator needs to propose a weekly pattern."""
    trainers: List[TrainerMapping] = field(default_factory=list)
    venues: List[VenueMapping] = field(default_factory=list)
    curriculum: List[CurriculumMapping] = field(default_factory=list)
    timings: List[TimingRule] = field(default_factory=list)
    training_types: List[TrainingTypeMapping] = field(default_factory=list)
    sections: List[SectionDetails] = field(default_factory=list)

    def curriculum_for(self, department: str, semester: int) -> Optional[CurriculumMapping]:
        for mapping in self.curriculum:
            if mapping.department == department and mapping.semester == semester:
                return mapping
        return None


@dataclass
class GenerationResult:
    """Outcome of generating and committing a schedule."""
    pattern_size: int
    inserted: List[TrainingSession] = field(default_factory=list)
    rejected: List[RejectedSession] = field(default_factory=list)
    instruction_days: int = 0
    expanded_over_calendar: bool = False
