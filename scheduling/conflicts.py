"""
Venue double-booking detection.

A candidate conflicts with an existing session when both share a date and a
venue (exact, case-sensitive), the existing session is not cancelled, and the
half-open intervals [start, end) overlap.
"""

from typing import Iterable, Optional

from .models import SessionStatus, TrainingSession
from .time_utils import intervals_overlap


def find_conflict(
    candidate: TrainingSession,
    existing: Iterable[TrainingSession]
) -> Optional[TrainingSession]:
    """
    Find the first session blocking the candidate's venue and time slot.

    Times are assumed valid with start < end; callers validate before this
    runs. A session with the candidate's own id is never a conflict.

    Returns:
        The blocking TrainingSession, or None
    """
    candidate_start = candidate.start_minutes
    candidate_end = candidate.end_minutes

    for session in existing:
        if session.id == candidate.id:
            continue
        if not _shares_slot(candidate, session):
            continue
        if intervals_overlap(candidate_start, candidate_end,
                             session.start_minutes, session.end_minutes):
            return session
    return None


def has_conflict(candidate: TrainingSession, existing: Iterable[TrainingSession]) -> bool:
    """Check whether the candidate would double-book a venue."""
    return find_conflict(candidate, existing) is not None


def _shares_slot(candidate: TrainingSession, session: TrainingSession) -> bool:
    return (
        session.date == candidate.date
        and session.venue == candidate.venue
        and session.status != SessionStatus.CANCELLED
    )
