"""
Weekly pattern expansion.

A weekly pattern is a set of SessionTemplates, each pinned to a weekday.
Expansion materializes one concrete session per (instruction day, template
on that weekday); holidays and exam days produce nothing.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Sequence

from .models import AcademicCalendarDay, SessionTemplate, TrainingSession, Weekday


def expand_weekly_pattern(
    templates: Sequence[SessionTemplate],
    calendar: Iterable[AcademicCalendarDay]
) -> List[TrainingSession]:
    """
    Expand a weekly pattern across an academic calendar.

    Args:
        templates: Weekly pattern entries
        calendar: Calendar days, in the order sessions should be emitted

    Returns:
        New SCHEDULED sessions with fresh ids, ordered by calendar day then
        template order
    """
    by_weekday = _group_by_weekday(templates)

    sessions = []
    for day in calendar:
        if not day.is_instruction:
            continue
        for template in by_weekday.get(day.weekday, []):
            sessions.append(template.materialize(day.date))
    return sessions


def materialize_week(
    templates: Sequence[SessionTemplate],
    week_start: date
) -> List[TrainingSession]:
    """Place every template on its weekday within the week starting at week_start."""
    sessions = []
    for template in templates:
        days_until_target = (template.weekday - Weekday.of(week_start)) % 7
        sessions.append(template.materialize(week_start + timedelta(days=days_until_target)))
    return sessions


def next_week_start(today: date) -> date:
    """The Monday strictly after today."""
    days_ahead = (Weekday.MONDAY - Weekday.of(today)) % 7 or 7
    return today + timedelta(days=days_ahead)


def _group_by_weekday(templates: Sequence[SessionTemplate]) -> Dict[int, List[SessionTemplate]]:
    grouped = defaultdict(list)
    for template in templates:
        grouped[template.weekday].append(template)
    return grouped
