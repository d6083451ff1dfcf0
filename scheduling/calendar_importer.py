"""
Academic almanac import.

Turns tabular almanac rows (event description, "From" date, optional "To"
date) into one AcademicCalendarDay per date, skipping the weekly rest day.
"""

import logging
import math
import numbers
import re
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .exceptions import NoValidCalendarRows
from .models import AcademicCalendarDay, DayType, Weekday
from .types import (
    DESCRIPTION_COLUMNS,
    EVENT_KEYWORDS,
    FROM_COLUMNS,
    REST_DAY,
    SPREADSHEET_EPOCH,
    TO_COLUMNS,
    CalendarImportResult,
)


logger = logging.getLogger(__name__)

_DOTTED_DATE = re.compile(r'^(\d{1,2})\.(\d{1,2})\.(\d{4})$')
_SERIAL = re.compile(r'^\d+(\.\d+)?$')


def parse_calendar_date(value: Any) -> Optional[date]:
    """
    Normalize an almanac date cell to a calendar date.

    Accepts DD.MM.YYYY strings, ISO strings, date/datetime values (pandas
    timestamps included) and spreadsheet day serials counted from
    1899-12-30, whose fractional time-of-day part is ignored.

    Returns:
        The date, or None when the cell cannot be parsed
    """
    if _is_blank(value) or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if isinstance(value, numbers.Real):
        return _from_serial(value)

    if isinstance(value, str):
        text = value.strip()
        match = _DOTTED_DATE.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            return _safe_date(year, month, day)
        if _SERIAL.match(text):
            return _from_serial(float(text))
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None

    return None


def classify_event(description: str) -> str:
    """
    Classify an almanac event by its description.

    Exams and submissions win over vacations, breaks and preparation
    holidays; anything else is an instruction day.
    """
    text = description.lower()
    for day_type, keywords in EVENT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return day_type
    return DayType.INSTRUCTION


def import_calendar_rows(
    rows: Iterable[Mapping[str, Any]],
    rest_day: int = REST_DAY
) -> CalendarImportResult:
    """
    Expand almanac rows into per-day calendar entries.

    Args:
        rows: Row mappings keyed by column header
        rest_day: Weekday that is never emitted (0=Sunday, 6=Saturday)

    Returns:
        CalendarImportResult with days sorted by date

    Raises:
        NoValidCalendarRows: If no row yields a single calendar day
    """
    by_date: Dict[date, AcademicCalendarDay] = {}
    occurrences: Counter = Counter()
    rows_processed = 0
    rows_skipped = 0

    for row in rows:
        rows_processed += 1
        days = _expand_row(row, rest_day)
        if days is None:
            rows_skipped += 1
            continue
        for day in days:
            occurrences[day.date] += 1
            by_date[day.date] = day

    if not by_date:
        logger.warning("Calendar import produced no days from %d row(s)", rows_processed)
        raise NoValidCalendarRows(rows_processed)

    duplicate_dates = sorted(day for day, count in occurrences.items() if count > 1)
    if duplicate_dates:
        logger.warning(
            "Overlapping almanac ranges on %d date(s); later rows win: %s",
            len(duplicate_dates),
            ', '.join(d.isoformat() for d in duplicate_dates),
        )

    result = CalendarImportResult(
        days=sorted(by_date.values(), key=lambda day: day.date),
        rows_processed=rows_processed,
        rows_skipped=rows_skipped,
        duplicate_dates=duplicate_dates,
    )
    logger.info(
        "Imported %d calendar day(s) (%d instruction) from %d row(s), %d skipped",
        result.total_days, result.instruction_days, rows_processed, rows_skipped,
    )
    return result


def summarize_calendar(days: Sequence[AcademicCalendarDay]) -> Dict[str, int]:
    """Count calendar days per day type."""
    counts = {day_type: 0 for day_type in DayType.values}
    for day in days:
        counts[day.day_type] += 1
    counts['total'] = len(days)
    return counts


def _expand_row(row: Mapping[str, Any], rest_day: int) -> Optional[List[AcademicCalendarDay]]:
    """Expand one row, or return None if it is unusable."""
    description = _first_value(row, DESCRIPTION_COLUMNS)
    from_raw = _first_value(row, FROM_COLUMNS)
    to_raw = _first_value(row, TO_COLUMNS)

    if not isinstance(description, str) or not description.strip() or from_raw is None:
        logger.debug("Skipping almanac row without description or start date: %r", row)
        return None

    from_date = parse_calendar_date(from_raw)
    to_date = parse_calendar_date(to_raw) if to_raw is not None else from_date
    if from_date is None or to_date is None:
        logger.debug("Skipping almanac row with unparseable dates: %r", row)
        return None
    if to_date < from_date:
        logger.debug("Skipping almanac row ending before it starts: %r", row)
        return None

    description = description.strip()
    day_type = classify_event(description)

    days = []
    current = from_date
    while current <= to_date:
        if Weekday.of(current) != rest_day:
            days.append(AcademicCalendarDay(date=current, day_type=day_type, description=description))
        current += timedelta(days=1)
    return days


def _first_value(row: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    for alias in aliases:
        value = row.get(alias)
        if not _is_blank(value):
            return value
    return None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    # pandas marks missing cells with NaT/NA, which are not equal to themselves
    try:
        return bool(value != value)
    except TypeError:
        return True


def _from_serial(serial: float) -> Optional[date]:
    serial = float(serial)
    if math.isnan(serial) or math.isinf(serial):
        return None
    try:
        return SPREADSHEET_EPOCH + timedelta(days=math.floor(serial))
    except OverflowError:
        return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None
