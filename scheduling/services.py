"""
Service layer for schedule generation and calendar import.

Services coordinate the engine pieces: they validate configuration, call
the pattern generator, expand its weekly pattern and hand the result to the
SessionStore in a single step.
"""

import logging
import threading
from datetime import date
from typing import Optional, Sequence

from django.conf import settings

from .calendar_importer import import_calendar_rows
from .exceptions import (
    ConfigurationIncomplete,
    GenerationCancelled,
    GenerationFailed,
    ValidationRejected,
)
from .expansion import expand_weekly_pattern, materialize_week, next_week_start
from .generators import PatternGenerator, get_pattern_generator, parse_weekly_pattern
from .models import AcademicCalendarDay
from .spreadsheets import read_almanac_rows
from .store import SessionStore
from .types import REST_DAY, CalendarImportResult, GenerationConfig, GenerationResult


logger = logging.getLogger(__name__)


def validate_configuration(config: GenerationConfig) -> None:
    """
    Check that every section has curriculum courses before generation.

    Raises:
        ConfigurationIncomplete: Listing every department/semester gap
    """
    gaps = []
    for section in config.sections:
        mapping = config.curriculum_for(section.department, section.semester)
        if mapping is None or not mapping.courses:
            gap = (
                f"No courses defined in curriculum for {section.department} "
                f"semester {section.semester} (section {section.section})"
            )
            if gap not in gaps:
                gaps.append(gap)

    if gaps:
        raise ConfigurationIncomplete(gaps)


def generate_schedule(
    store: SessionStore,
    config: GenerationConfig,
    generator: Optional[PatternGenerator] = None,
    calendar: Optional[Sequence[AcademicCalendarDay]] = None,
    week_start: Optional[date] = None,
    cancel_event: Optional[threading.Event] = None
) -> GenerationResult:
    """
    Generate a weekly pattern and commit the resulting schedule.

    With a calendar the pattern is expanded over every instruction day;
    without one it fills a single week starting at week_start (default:
    next Monday).

    Args:
        store: Store receiving the sessions
        config: Configuration bundle for the generator
        generator: Pattern generator (default: the configured one)
        calendar: Imported academic calendar, if any
        week_start: First day of the representative week
        cancel_event: Set by the host to abandon generation before commit

    Returns:
        GenerationResult with inserted and conflicting sessions

    Raises:
        ConfigurationIncomplete: If a section has no curriculum
        GenerationFailed: If the generator fails or returns unusable data
        GenerationCancelled: If cancel_event was set; nothing is committed
    """
    validate_configuration(config)
    generator = generator or get_pattern_generator()

    logger.info("Requesting weekly pattern for %d section(s)", len(config.sections))
    try:
        raw_pattern = generator(config)
    except GenerationFailed:
        raise
    except Exception as exc:
        logger.exception("Pattern generator raised an error")
        raise GenerationFailed(f"Pattern generator failed: {exc}") from exc

    templates = parse_weekly_pattern(raw_pattern)

    if calendar:
        sessions = expand_weekly_pattern(templates, calendar)
        instruction_days = sum(1 for day in calendar if day.is_instruction)
    else:
        sessions = materialize_week(templates, week_start or next_week_start(date.today()))
        instruction_days = 0

    if cancel_event is not None and cancel_event.is_set():
        logger.info("Schedule generation cancelled; %d session(s) discarded", len(sessions))
        raise GenerationCancelled()

    outcome = store.bulk_insert(sessions)
    logger.info(
        "Schedule generated from %d template(s): %d inserted, %d rejected",
        len(templates), len(outcome.inserted), len(outcome.rejected),
    )
    return GenerationResult(
        pattern_size=len(templates),
        inserted=outcome.inserted,
        rejected=outcome.rejected,
        instruction_days=instruction_days,
        expanded_over_calendar=bool(calendar),
    )


def configured_rest_day() -> int:
    """Rest day from settings.SCHEDULING, falling back to Sunday."""
    return int(getattr(settings, 'SCHEDULING', {}).get('REST_DAY', REST_DAY))


def import_calendar_file(
    source,
    filename: Optional[str] = None,
    rest_day: Optional[int] = None
) -> CalendarImportResult:
    """
    Read an almanac spreadsheet and expand it into calendar days.

    Raises:
        ValidationRejected: If the file cannot be read
        NoValidCalendarRows: If no row yields a calendar day
    """
    try:
        rows = read_almanac_rows(source, filename)
    except ValueError as exc:
        raise ValidationRejected(str(exc)) from exc
    except Exception as exc:
        logger.exception("Failed to read almanac file %s", filename or source)
        raise ValidationRejected(f"Failed to parse calendar file: {exc}") from exc

    if rest_day is None:
        rest_day = configured_rest_day()
    return import_calendar_rows(rows, rest_day=rest_day)
