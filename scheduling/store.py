"""
In-memory session store.

SessionStore owns the canonical collection of training sessions and applies
every lifecycle transition:

    SCHEDULED -> COMPLETED -> VERIFIED
    SCHEDULED / COMPLETED -> CANCELLED

VERIFIED and CANCELLED are terminal. Every rejected operation raises
ValidationRejected and leaves the store unchanged.
"""

import logging
import threading
from datetime import date
from typing import Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError

from .conflicts import find_conflict
from .exceptions import SessionNotFound, ValidationRejected
from .models import SessionStatus, TrainingSession, new_session_id
from .time_utils import is_late, is_valid_clock, minutes_difference, normalize_clock, to_minutes
from .types import BulkInsertResult, RejectedSession, SessionUpdateData


logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.COMPLETED)


class SessionStore:
    """Canonical, mutable set of training sessions guarded by a single lock."""

    def __init__(self):
        self._sessions: Dict[str, TrainingSession] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._sessions)

    # Queries

    def all(self) -> List[TrainingSession]:
        """All sessions ordered by date, then start time."""
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: (s.date, s.start_minutes))

    def get(self, session_id: str) -> TrainingSession:
        """
        Get a session by id.

        Raises:
            SessionNotFound: If no session has this id
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def filter(
        self,
        venue: Optional[str] = None,
        trainer: Optional[str] = None,
        year: Optional[int] = None,
        status: Optional[str] = None,
        batch: Optional[str] = None,
        on_date: Optional[date] = None
    ) -> List[TrainingSession]:
        """
        Filter sessions the way the operations dashboard does.

        Args:
            venue: Substring of the venue name
            trainer: Case-insensitive substring of the trainer name
            year: Exact student year
            status: Exact status
            batch: Substring of the batch label
            on_date: Exact date
        """
        trainer_query = trainer.lower() if trainer else None
        return [
            s for s in self.all()
            if (not venue or venue in s.venue)
            and (not trainer_query or trainer_query in (s.trainer_name or '').lower())
            and (year is None or s.year == year)
            and (not status or s.status == status)
            and (not batch or batch in s.batch)
            and (on_date is None or s.date == on_date)
        ]

    def needing_attention(self, department: Optional[str] = None) -> List[TrainingSession]:
        """Cancelled sessions and scheduled sessions without a trainer."""
        return [
            s for s in self.filter(batch=department)
            if s.status == SessionStatus.CANCELLED
            or (s.status == SessionStatus.SCHEDULED and s.is_unassigned)
        ]

    # Commands

    def add(self, session: TrainingSession) -> TrainingSession:
        """
        Add a manually entered session.

        The session gets a fresh id and starts SCHEDULED.

        Raises:
            ValidationRejected: If the session is invalid or double-books its venue
        """
        candidate = session.copy(
            id=new_session_id(),
            status=SessionStatus.SCHEDULED,
            cancellation_reason=None,
            actual_start_time=None,
            actual_end_time=None,
            topic_covered=None,
            verified_topics=None,
            is_late=None,
        )
        with self._lock:
            self._validate(candidate)
            self._ensure_no_conflict(candidate, self._sessions.values())
            self._sessions[candidate.id] = candidate

        logger.info("Added session %s", candidate)
        return candidate

    def bulk_insert(self, sessions: Iterable[TrainingSession]) -> BulkInsertResult:
        """
        Insert many sessions at once, e.g. an expanded semester schedule.

        Each session gets a fresh id. Sessions that are invalid or would
        double-book a venue, against the store or an earlier entry of this
        insert, are reported as rejected. Accepted sessions are
        committed together.
        """
        result = BulkInsertResult()

        with self._lock:
            accepted: Dict[str, TrainingSession] = {}
            for session in sessions:
                candidate = session.copy(id=new_session_id())
                try:
                    self._validate(candidate)
                except ValidationRejected as exc:
                    logger.warning("Rejected invalid session %s: %s", candidate, exc.reason)
                    result.rejected.append(
                        RejectedSession(session=candidate, conflicts_with=None, reason=exc.reason)
                    )
                    continue

                blocking = (
                    find_conflict(candidate, self._sessions.values())
                    or find_conflict(candidate, accepted.values())
                )
                if blocking is not None:
                    result.rejected.append(
                        RejectedSession(
                            session=candidate,
                            conflicts_with=blocking,
                            reason=_conflict_reason(candidate, blocking),
                        )
                    )
                    continue
                accepted[candidate.id] = candidate

            self._sessions.update(accepted)

        result.inserted = list(accepted.values())
        logger.info(
            "Bulk insert committed %d session(s), rejected %d",
            len(result.inserted), len(result.rejected),
        )
        return result

    def edit(self, session_id: str, update_data: SessionUpdateData) -> TrainingSession:
        """
        Edit a session's time, topic and placement.

        Raises:
            SessionNotFound: If no session has this id
            ValidationRejected: If the session is cancelled, the new data is
                invalid, or the new slot double-books the venue
        """
        with self._lock:
            session = self.get(session_id)
            if session.status == SessionStatus.CANCELLED:
                raise ValidationRejected("Cancelled sessions cannot be edited", session_id)

            changes = {
                'topic': update_data.topic,
                'start_time': _normalized_clock_or_none(update_data.start_time, 'start', session_id),
                'end_time': _normalized_clock_or_none(update_data.end_time, 'end', session_id),
                'venue': update_data.venue,
                'date': update_data.date,
                'trainer_id': update_data.trainer_id,
                'trainer_name': update_data.trainer_name,
                'planned_topics': _copied_or_none(update_data.planned_topics),
            }
            updated = session.copy(**{k: v for k, v in changes.items() if v is not None})
            if updated.status == SessionStatus.VERIFIED:
                updated = _with_verification_outcome(updated, updated.verified_topics or [])
            self._validate(updated)

            if update_data.changes_placement() and _placement_changed(session, updated):
                self._ensure_no_conflict(updated, self._sessions.values())

            self._sessions[session_id] = updated

        logger.info("Edited session %s", updated)
        return updated

    def cancel(self, session_id: str, reason: str) -> TrainingSession:
        """
        Cancel a scheduled or completed session.

        Raises:
            SessionNotFound: If no session has this id
            ValidationRejected: If the reason is empty or the session is terminal
        """
        reason = (reason or '').strip()
        with self._lock:
            session = self.get(session_id)
            if not reason:
                raise ValidationRejected("A cancellation reason is required", session_id)
            self._ensure_status(session, ACTIVE_STATUSES, 'cancel')

            updated = session.copy(status=SessionStatus.CANCELLED, cancellation_reason=reason)
            self._sessions[session_id] = updated

        logger.info("Cancelled session %s: %s", session_id, reason)
        return updated

    def complete(self, session_id: str) -> TrainingSession:
        """
        Record the trainer's own report that a session took place.

        Raises:
            SessionNotFound: If no session has this id
            ValidationRejected: If the session is not scheduled
        """
        with self._lock:
            session = self.get(session_id)
            self._ensure_status(session, (SessionStatus.SCHEDULED,), 'complete')

            updated = session.copy(status=SessionStatus.COMPLETED)
            self._sessions[session_id] = updated

        logger.info("Completed session %s", session_id)
        return updated

    def verify(
        self,
        session_id: str,
        actual_start_time: Optional[str],
        actual_end_time: Optional[str],
        verified_topics: Iterable[str] = ()
    ) -> TrainingSession:
        """
        Record an independent check of actual times and topic coverage.

        Args:
            session_id: Session to verify
            actual_start_time: Observed entry time ("HH:MM")
            actual_end_time: Observed exit time ("HH:MM")
            verified_topics: Available topics confirmed as covered

        Returns:
            The VERIFIED session

        Raises:
            SessionNotFound: If no session has this id
            ValidationRejected: If a time is missing or invalid, a topic was
                never planned, or the session is not scheduled/completed
        """
        with self._lock:
            session = self.get(session_id)
            self._ensure_status(session, ACTIVE_STATUSES, 'verify')

            if not actual_start_time or not actual_end_time:
                raise ValidationRejected("Both actual start and end times are required", session_id)
            actual_start = _normalized_clock_or_none(actual_start_time, 'actual start', session_id)
            actual_end = _normalized_clock_or_none(actual_end_time, 'actual end', session_id)
            if to_minutes(actual_end) <= to_minutes(actual_start):
                raise ValidationRejected("Actual end time must be after actual start time", session_id)

            available = session.available_topics
            confirmed = list(dict.fromkeys(verified_topics))
            unknown = [topic for topic in confirmed if topic not in available]
            if unknown:
                raise ValidationRejected(
                    f"Topics not planned for this session: {', '.join(unknown)}", session_id
                )

            late_minutes = minutes_difference(session.start_time, actual_start)
            updated = _with_verification_outcome(
                session.copy(
                    status=SessionStatus.VERIFIED,
                    actual_start_time=actual_start,
                    actual_end_time=actual_end,
                ),
                confirmed,
            )
            self._sessions[session_id] = updated

        logger.info(
            "Verified session %s (%+d min, %d/%d topics)",
            session_id, late_minutes, len(confirmed), len(available),
        )
        return updated

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
        logger.info("Cleared all sessions")

    # Helpers

    def _validate(self, session: TrainingSession) -> None:
        try:
            session.clean()
        except ValidationError as exc:
            raise ValidationRejected('; '.join(exc.messages), session.id) from exc

    def _ensure_no_conflict(self, candidate: TrainingSession, existing: Iterable[TrainingSession]) -> None:
        blocking = find_conflict(candidate, existing)
        if blocking is not None:
            raise ValidationRejected(_conflict_reason(candidate, blocking), candidate.id)

    def _ensure_status(self, session: TrainingSession, allowed, action: str) -> None:
        if session.status not in allowed:
            raise ValidationRejected(
                f"Cannot {action} a session that is {session.status}", session.id
            )


def _conflict_reason(candidate: TrainingSession, blocking: TrainingSession) -> str:
    return (
        f"Venue {candidate.venue} is already booked on {candidate.date.isoformat()} "
        f"{blocking.start_time}-{blocking.end_time} by session {blocking.id} ({blocking.batch})"
    )


def _normalized_clock_or_none(value: Optional[str], label: str, session_id: str) -> Optional[str]:
    if value is None:
        return None
    if not is_valid_clock(value):
        raise ValidationRejected(f"Invalid {label} time {value!r}", session_id)
    return normalize_clock(value)


def _with_verification_outcome(session: TrainingSession, confirmed: Iterable[str]) -> TrainingSession:
    """Derive lateness and topic coverage from the session's current schedule."""
    available = session.available_topics
    still_planned = [topic for topic in confirmed if topic in available]
    return session.copy(
        verified_topics=still_planned,
        topic_covered=len(still_planned) == len(available),
        is_late=is_late(minutes_difference(session.start_time, session.actual_start_time)),
    )


def _placement_changed(before: TrainingSession, after: TrainingSession) -> bool:
    return (
        before.date != after.date
        or before.venue != after.venue
        or before.start_minutes != after.start_minutes
        or before.end_minutes != after.end_minutes
    )


def _copied_or_none(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    return None if values is None else list(values)
