"""
Tests for the training scheduling engine.

Tests cover:
- Clock arithmetic and lateness
- Venue conflict detection
- Academic almanac import
- Weekly pattern expansion
- SessionStore lifecycle (add, bulk insert, edit, cancel, complete, verify)
- Pattern parsing and schedule generation services
- API endpoints
- Management commands
"""

import json
import os
import shutil
import tempfile
import threading
from dataclasses import asdict
from datetime import date
from io import StringIO

from django.apps import apps
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, override_settings
from rest_framework import status
from rest_framework.test import APISimpleTestCase

from .calendar_importer import (
    classify_event,
    import_calendar_rows,
    parse_calendar_date,
    summarize_calendar,
)
from .conflicts import find_conflict, has_conflict
from .exceptions import (
    ConfigurationIncomplete,
    GenerationCancelled,
    GenerationFailed,
    NoValidCalendarRows,
    SessionNotFound,
    ValidationRejected,
)
from .expansion import expand_weekly_pattern, materialize_week, next_week_start
from .generators import get_pattern_generator, parse_weekly_pattern
from .models import (
    AcademicCalendarDay,
    DayType,
    SessionStatus,
    SessionTemplate,
    TrainingSession,
    Weekday,
)
from .serializers import SessionWriteSerializer
from . import services
from .spreadsheets import export_sessions
from .store import SessionStore
from .time_utils import (
    format_minutes,
    intervals_overlap,
    is_late,
    is_valid_clock,
    minutes_difference,
    normalize_clock,
    to_minutes,
)
from .types import CurriculumMapping, GenerationConfig, SectionDetails, SessionUpdateData


def make_session(**overrides):
    values = {
        'topic': 'Data Structures',
        'batch': 'CSE-A',
        'year': 2,
        'venue': 'E-301',
        'date': date(2024, 1, 10),
        'start_time': '09:00',
        'end_time': '12:00',
        'trainer_id': 'T1',
        'trainer_name': 'Priya Raman',
    }
    values.update(overrides)
    return TrainingSession(**values)


def make_template(**overrides):
    values = {
        'topic': 'Aptitude',
        'batch': 'CSE-A',
        'year': 3,
        'venue': 'E-301',
        'weekday': Weekday.MONDAY,
        'start_time': '09:00',
        'end_time': '10:30',
        'trainer_name': 'Priya Raman',
    }
    values.update(overrides)
    return SessionTemplate(**values)


def make_config(with_curriculum=True):
    curriculum = [CurriculumMapping(department='CSE', semester=5, courses=['Aptitude'])]
    return GenerationConfig(
        curriculum=curriculum if with_curriculum else [],
        sections=[SectionDetails(id='S1', department='CSE', section='A', semester=5)],
    )


WEEKLY_PATTERN = [
    {
        'topic': 'Aptitude',
        'batch': 'CSE-A',
        'year': 3,
        'venue': 'E-301',
        'weekday': 1,
        'startTime': '9:00',
        'endTime': '10:30',
        'trainerName': 'Priya Raman',
        'plannedTopics': ['Percentages', 'Ratios'],
    },
    {
        'topic': 'Verbal Ability',
        'batch': 'CSE-B',
        'year': 3,
        'venue': 'E-302',
        'date': '2025-10-01',
        'start_time': '11:00',
        'end_time': '12:30',
        'trainer_name': 'Arjun Mehta',
    },
]


def fake_pattern_generator(config):
    return WEEKLY_PATTERN


def failing_pattern_generator(config):
    raise RuntimeError("model quota exceeded")


class TimeUtilsTests(SimpleTestCase):
    """Test clock-time arithmetic."""

    def test_to_minutes(self):
        """Test converting clock times to minutes since midnight."""
        self.assertEqual(to_minutes('00:00'), 0)
        self.assertEqual(to_minutes('09:55'), 595)
        self.assertEqual(to_minutes('13:20'), 800)
        self.assertEqual(to_minutes('23:59:30'), 1439)

    def test_to_minutes_rejects_invalid_values(self):
        """Test that malformed or out-of-range times raise ValueError."""
        for value in ('24:00', '12:60', '9', 'noon', '', None, '-1:00'):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    to_minutes(value)

    def test_normalize_and_format(self):
        """Test normalizing clock strings to zero-padded HH:MM."""
        self.assertEqual(normalize_clock('9:05'), '09:05')
        self.assertEqual(normalize_clock('13:20:00'), '13:20')
        self.assertEqual(format_minutes(595), '09:55')
        self.assertFalse(is_valid_clock('25:00'))
        self.assertTrue(is_valid_clock('07:30'))

    def test_minutes_difference_is_antisymmetric(self):
        """Test that swapping arguments negates the difference."""
        samples = ['00:00', '09:55', '10:05', '13:20', '23:59']
        for a in samples:
            for b in samples:
                with self.subTest(a=a, b=b):
                    self.assertEqual(minutes_difference(a, b), -minutes_difference(b, a))

    def test_minutes_difference_crosses_hour_boundaries(self):
        """Test ordering across hours is numeric, not lexical."""
        self.assertEqual(minutes_difference('09:55', '10:05'), 10)
        self.assertEqual(minutes_difference('13:20', '09:55'), -205)

    def test_minutes_difference_missing_side(self):
        """Test that a missing time yields zero."""
        self.assertEqual(minutes_difference('', '10:00'), 0)
        self.assertEqual(minutes_difference('10:00', None), 0)

    def test_is_late_grace_period(self):
        """Test lateness starts after five minutes."""
        self.assertFalse(is_late(5))
        self.assertTrue(is_late(6))
        self.assertFalse(is_late(-10))
        self.assertTrue(is_late(minutes_difference('09:55', '10:05')))

    def test_intervals_are_half_open(self):
        """Test touching intervals do not overlap."""
        self.assertTrue(intervals_overlap(540, 720, 719, 780))
        self.assertFalse(intervals_overlap(540, 720, 720, 780))
        self.assertFalse(intervals_overlap(720, 780, 540, 720))


class TrainingSessionModelTests(SimpleTestCase):
    """Test TrainingSession and SessionTemplate models."""

    def test_available_topics_fall_back_to_topic(self):
        """Test that a session without planned topics offers its main topic."""
        self.assertEqual(make_session().available_topics, ['Data Structures'])
        session = make_session(planned_topics=['Stacks', 'Queues'])
        self.assertEqual(session.available_topics, ['Stacks', 'Queues'])

    def test_clean_rejects_end_before_start(self):
        """Test that end time must be after start time."""
        with self.assertRaises(ValidationError) as ctx:
            make_session(start_time='12:00', end_time='09:00').clean()
        self.assertIn('end_time', ctx.exception.message_dict)

    def test_clean_requires_cancellation_reason(self):
        """Test that cancelled sessions need a reason."""
        with self.assertRaises(ValidationError):
            make_session(status=SessionStatus.CANCELLED).clean()

    def test_clean_rejects_verification_data_before_verification(self):
        """Test that only verified sessions carry verification data."""
        with self.assertRaises(ValidationError):
            make_session(actual_start_time='09:00').clean()

    def test_copy_detaches_lists(self):
        """Test that copies do not share planned topic lists."""
        session = make_session(planned_topics=['A'])
        copied = session.copy(topic='Graphs')
        copied.planned_topics.append('B')
        self.assertEqual(session.planned_topics, ['A'])
        self.assertEqual(copied.topic, 'Graphs')
        self.assertEqual(copied.id, session.id)

    def test_template_materialize(self):
        """Test materializing a template on a date."""
        template = make_template(planned_topics=['Percentages'])
        session = template.materialize(date(2025, 9, 29))

        self.assertEqual(session.date, date(2025, 9, 29))
        self.assertEqual(session.status, SessionStatus.SCHEDULED)
        self.assertEqual(session.planned_topics, ['Percentages'])
        self.assertEqual(template.weekday_name, 'Monday')

    def test_weekday_numbering_starts_on_sunday(self):
        """Test that weekdays count from Sunday = 0."""
        self.assertEqual(Weekday.of(date(2025, 9, 28)), Weekday.SUNDAY)
        self.assertEqual(Weekday.of(date(2025, 10, 4)), Weekday.SATURDAY)


class ConflictDetectionTests(SimpleTestCase):
    """Test venue double-booking detection."""

    def setUp(self):
        self.existing = make_session()

    def test_overlap_is_a_conflict(self):
        """Test that a candidate overlapping by one minute conflicts."""
        candidate = make_session(start_time='11:59', end_time='13:00')
        self.assertEqual(find_conflict(candidate, [self.existing]), self.existing)

    def test_touching_boundary_is_not_a_conflict(self):
        """Test that a candidate starting when the existing one ends is allowed."""
        candidate = make_session(start_time='12:00', end_time='13:00')
        self.assertFalse(has_conflict(candidate, [self.existing]))

    def test_cancelled_sessions_never_conflict(self):
        """Test that cancelled sessions do not block the venue."""
        cancelled = make_session(status=SessionStatus.CANCELLED, cancellation_reason='Trainer ill')
        candidate = make_session(start_time='10:00', end_time='11:00')
        self.assertFalse(has_conflict(candidate, [cancelled]))

    def test_other_venue_or_date_does_not_conflict(self):
        """Test that only the same venue on the same date conflicts."""
        self.assertFalse(has_conflict(make_session(venue='E-302'), [self.existing]))
        self.assertFalse(has_conflict(make_session(venue='e-301'), [self.existing]))
        self.assertFalse(has_conflict(make_session(date=date(2024, 1, 11)), [self.existing]))

    def test_conflict_is_symmetric(self):
        """Test that overlap is detected from either side."""
        candidate = make_session(start_time='10:00', end_time='13:00')
        self.assertTrue(has_conflict(candidate, [self.existing]))
        self.assertTrue(has_conflict(self.existing, [candidate]))

    def test_session_does_not_conflict_with_itself(self):
        """Test that the candidate's own id is ignored."""
        self.assertFalse(has_conflict(self.existing, [self.existing]))


class CalendarImporterTests(SimpleTestCase):
    """Test academic almanac import."""

    def test_parse_calendar_date_formats(self):
        """Test the accepted date cell formats."""
        self.assertEqual(parse_calendar_date('28.09.2025'), date(2025, 9, 28))
        self.assertEqual(parse_calendar_date('2025-09-28'), date(2025, 9, 28))
        self.assertEqual(parse_calendar_date(45928), date(2025, 9, 28))
        self.assertEqual(parse_calendar_date(45929.5), date(2025, 9, 29))
        self.assertEqual(parse_calendar_date('45928'), date(2025, 9, 28))
        self.assertEqual(parse_calendar_date(date(2025, 1, 1)), date(2025, 1, 1))

    def test_parse_calendar_date_failures(self):
        """Test that unusable cells parse to None."""
        for value in (None, '', 'TBD', '31.02.2025', float('nan'), True):
            with self.subTest(value=value):
                self.assertIsNone(parse_calendar_date(value))

    def test_classify_event(self):
        """Test keyword classification of almanac events."""
        self.assertEqual(classify_event('Mid Semester Exam'), DayType.EXAM)
        self.assertEqual(classify_event('Submission of internal marks'), DayType.EXAM)
        self.assertEqual(classify_event('Dussera Vacation'), DayType.HOLIDAY)
        self.assertEqual(classify_event('Christmas Break'), DayType.HOLIDAY)
        self.assertEqual(classify_event('Preparation holidays'), DayType.HOLIDAY)
        self.assertEqual(classify_event('Commencement of Instruction'), DayType.INSTRUCTION)
        self.assertEqual(classify_event('Sports Day'), DayType.INSTRUCTION)

    def test_exam_wins_over_holiday_keywords(self):
        """Test that exam keywords take precedence."""
        self.assertEqual(classify_event('Exam preparation break'), DayType.EXAM)

    def test_holiday_range_skips_rest_day(self):
        """Test that a vacation range expands to every non-Sunday date."""
        result = import_calendar_rows([
            {'I Semester': 'Dussera Vacation', 'From': '28.09.2025', 'To': '05.10.2025'},
        ])

        expected = [date(2025, 9, 29), date(2025, 9, 30)] + [date(2025, 10, d) for d in range(1, 5)]
        self.assertEqual([day.date for day in result.days], expected)
        self.assertTrue(all(day.day_type == DayType.HOLIDAY for day in result.days))
        self.assertEqual(result.instruction_days, 0)
        self.assertEqual(result.days[0].day_of_week, 'Monday')

    def test_custom_rest_day(self):
        """Test that another weekday can be the rest day."""
        result = import_calendar_rows(
            [{'Event': 'Instruction', 'From': '27.09.2025', 'To': '28.09.2025'}],
            rest_day=Weekday.SATURDAY,
        )
        self.assertEqual([day.date for day in result.days], [date(2025, 9, 28)])

    def test_single_day_row_without_to(self):
        """Test that a row without a To date covers one day."""
        result = import_calendar_rows([{'Description': 'Sports Day', 'From': '01.10.2025'}])
        self.assertEqual(result.total_days, 1)
        self.assertEqual(result.days[0].description, 'Sports Day')

    def test_invalid_rows_are_skipped(self):
        """Test that rows without description or parseable dates are counted and skipped."""
        result = import_calendar_rows([
            {'I Semester': None, 'From': '01.10.2025'},
            {'I Semester': 'Instruction', 'From': 'soon'},
            {'I Semester': 'Instruction', 'From': '01.10.2025', 'To': 'later'},
            {'I Semester': 'Instruction', 'From': '02.10.2025'},
        ])
        self.assertEqual(result.rows_processed, 4)
        self.assertEqual(result.rows_skipped, 3)
        self.assertEqual(result.total_days, 1)

    def test_overlapping_rows_last_write_wins(self):
        """Test that later rows replace earlier ones and duplicates are reported."""
        result = import_calendar_rows([
            {'I Semester': 'Instruction', 'From': '29.09.2025', 'To': '01.10.2025'},
            {'I Semester': 'Gandhi Jayanthi break', 'From': '01.10.2025', 'To': '02.10.2025'},
        ])
        by_date = {day.date: day for day in result.days}

        self.assertEqual(by_date[date(2025, 9, 30)].day_type, DayType.INSTRUCTION)
        self.assertEqual(by_date[date(2025, 10, 1)].day_type, DayType.HOLIDAY)
        self.assertEqual(result.duplicate_dates, [date(2025, 10, 1)])
        self.assertEqual(len(result.days), 4)

    def test_range_ending_before_start_is_skipped(self):
        """Test that an inverted date range counts as a malformed row."""
        result = import_calendar_rows([
            {'I Semester': 'Dussera Vacation', 'From': '05.10.2025', 'To': '28.09.2025'},
            {'I Semester': 'Instruction', 'From': '01.10.2025'},
        ])
        self.assertEqual(result.rows_processed, 2)
        self.assertEqual(result.rows_skipped, 1)
        self.assertEqual(result.total_days, 1)

    def test_no_valid_rows_raises(self):
        """Test that an almanac without any usable row is rejected."""
        with self.assertRaises(NoValidCalendarRows) as ctx:
            import_calendar_rows([{'Notes': 'nothing here'}])
        self.assertEqual(ctx.exception.rows_processed, 1)

    def test_summarize_calendar(self):
        """Test counting days per type."""
        result = import_calendar_rows([
            {'I Semester': 'Instruction', 'From': '29.09.2025', 'To': '30.09.2025'},
            {'I Semester': 'Mid Exam', 'From': '01.10.2025'},
        ])
        summary = summarize_calendar(result.days)
        self.assertEqual(summary['INSTRUCTION'], 2)
        self.assertEqual(summary['EXAM'], 1)
        self.assertEqual(summary['HOLIDAY'], 0)
        self.assertEqual(summary['total'], 3)


class ExpansionTests(SimpleTestCase):
    """Test weekly pattern expansion."""

    def setUp(self):
        self.calendar = [
            AcademicCalendarDay(date(2025, 9, 29), DayType.INSTRUCTION, 'Instruction'),
            AcademicCalendarDay(date(2025, 9, 30), DayType.INSTRUCTION, 'Instruction'),
            AcademicCalendarDay(date(2025, 10, 6), DayType.HOLIDAY, 'Vacation'),
            AcademicCalendarDay(date(2025, 10, 13), DayType.INSTRUCTION, 'Instruction'),
        ]
        self.templates = [
            make_template(weekday=Weekday.MONDAY),
            make_template(topic='Coding', weekday=Weekday.TUESDAY, venue='Lab 2'),
        ]

    def test_expands_only_on_instruction_days(self):
        """Test that sessions land on matching instruction days only."""
        sessions = expand_weekly_pattern(self.templates, self.calendar)

        self.assertEqual(
            [(s.date, s.topic) for s in sessions],
            [
                (date(2025, 9, 29), 'Aptitude'),
                (date(2025, 9, 30), 'Coding'),
                (date(2025, 10, 13), 'Aptitude'),
            ],
        )
        self.assertTrue(all(s.status == SessionStatus.SCHEDULED for s in sessions))
        self.assertEqual(len({s.id for s in sessions}), 3)

    def test_expansion_is_repeatable_up_to_ids(self):
        """Test that expanding twice gives identical sessions apart from ids."""
        first = expand_weekly_pattern(self.templates, self.calendar)
        second = expand_weekly_pattern(self.templates, self.calendar)

        def without_id(session):
            data = asdict(session)
            data.pop('id')
            return data

        self.assertEqual([without_id(s) for s in first], [without_id(s) for s in second])
        self.assertNotEqual([s.id for s in first], [s.id for s in second])

    def test_empty_calendar_yields_nothing(self):
        self.assertEqual(expand_weekly_pattern(self.templates, []), [])

    def test_materialize_week(self):
        """Test placing templates within a single week."""
        templates = [make_template(weekday=Weekday.WEDNESDAY), make_template(weekday=Weekday.SUNDAY)]
        sessions = materialize_week(templates, date(2025, 9, 29))
        self.assertEqual([s.date for s in sessions], [date(2025, 10, 1), date(2025, 10, 5)])

    def test_next_week_start(self):
        """Test that the next week always starts on a later Monday."""
        self.assertEqual(next_week_start(date(2025, 10, 1)), date(2025, 10, 6))
        self.assertEqual(next_week_start(date(2025, 9, 29)), date(2025, 10, 6))
        self.assertEqual(next_week_start(date(2025, 9, 28)), date(2025, 9, 29))


class SessionStoreTests(SimpleTestCase):
    """Test SessionStore queries and lifecycle transitions."""

    def setUp(self):
        self.store = SessionStore()
        self.session = self.store.add(make_session(planned_topics=['A', 'B', 'C'], start_time='09:55'))

    def test_add_assigns_fresh_id_and_status(self):
        """Test that added sessions get a new id and start scheduled."""
        draft = make_session(date=date(2024, 1, 11), status=SessionStatus.COMPLETED)
        session = self.store.add(draft)

        self.assertNotEqual(session.id, draft.id)
        self.assertEqual(session.status, SessionStatus.SCHEDULED)
        self.assertEqual(self.store.get(session.id), session)
        self.assertEqual(len(self.store), 2)

    def test_add_rejects_double_booking(self):
        """Test that a conflicting session is refused and names the blocker."""
        with self.assertRaises(ValidationRejected) as ctx:
            self.store.add(make_session(start_time='11:00', end_time='13:00'))
        self.assertIn(self.session.id, ctx.exception.reason)
        self.assertIn('E-301', ctx.exception.reason)
        self.assertEqual(len(self.store), 1)

    def test_add_rejects_invalid_session(self):
        """Test that invalid sessions never enter the store."""
        with self.assertRaises(ValidationRejected):
            self.store.add(make_session(venue='', date=date(2024, 2, 1)))
        self.assertEqual(len(self.store), 1)

    def test_get_missing_session(self):
        with self.assertRaises(SessionNotFound):
            self.store.get('missing')

    def test_filter(self):
        """Test dashboard filters."""
        other = self.store.add(make_session(
            venue='Lab 2', batch='ECE-B', year=3, trainer_name='Arjun Mehta',
        ))

        self.assertEqual(self.store.filter(venue='Lab'), [other])
        self.assertEqual(self.store.filter(trainer='priya'), [self.session])
        self.assertEqual(self.store.filter(year=3), [other])
        self.assertEqual(self.store.filter(batch='ECE'), [other])
        self.assertEqual(self.store.filter(on_date=date(2024, 1, 10)), [other, self.session])
        self.assertEqual(self.store.filter(status=SessionStatus.CANCELLED), [])

    def test_all_is_ordered_by_date_and_start(self):
        later = self.store.add(make_session(venue='Lab 2', start_time='08:00', end_time='09:00',
                                            date=date(2024, 1, 11)))
        earlier = self.store.add(make_session(venue='Lab 2', start_time='08:00', end_time='09:00'))
        self.assertEqual(self.store.all(), [earlier, self.session, later])

    def test_needing_attention(self):
        """Test listing cancelled and unassigned sessions."""
        unassigned = self.store.add(make_session(venue='Lab 2', trainer_name=''))
        cancelled = self.store.add(make_session(venue='Lab 3', batch='ECE-A'))
        self.store.cancel(cancelled.id, 'Trainer ill')

        ids = [s.id for s in self.store.needing_attention()]
        self.assertEqual(sorted(ids), sorted([unassigned.id, cancelled.id]))
        self.assertEqual([s.id for s in self.store.needing_attention('ECE')], [cancelled.id])

    def test_bulk_insert_reports_conflicts(self):
        """Test that bulk insert commits clean sessions and reports clashes."""
        incoming = [
            make_session(venue='Lab 2'),
            make_session(venue='Lab 2', batch='CSE-B', start_time='10:00', end_time='11:00'),
            make_session(start_time='10:00', end_time='11:00'),
            make_session(venue='Lab 3', year=9),
        ]
        result = self.store.bulk_insert(incoming)

        self.assertEqual(len(result.inserted), 1)
        self.assertEqual(len(result.rejected), 3)
        self.assertTrue(result.has_conflicts)
        self.assertEqual(result.rejected[0].conflicts_with, result.inserted[0])
        self.assertEqual(result.rejected[1].conflicts_with, self.session)
        self.assertIsNone(result.rejected[2].conflicts_with)
        self.assertEqual(len(self.store), 2)

    def test_edit(self):
        """Test editing time and placement."""
        updated = self.store.edit(self.session.id, SessionUpdateData(
            venue='Lab 2', start_time='14:00', end_time='15:30', topic='Trees',
        ))
        self.assertEqual(updated.venue, 'Lab 2')
        self.assertEqual(updated.topic, 'Trees')
        self.assertEqual(self.store.get(self.session.id), updated)

    def test_edit_rejects_conflicting_move(self):
        """Test that moving onto a booked slot is refused."""
        other = self.store.add(make_session(venue='Lab 2'))
        with self.assertRaises(ValidationRejected):
            self.store.edit(other.id, SessionUpdateData(venue='E-301'))
        self.assertEqual(self.store.get(other.id).venue, 'Lab 2')

    def test_edit_rejects_cancelled_session(self):
        self.store.cancel(self.session.id, 'Holiday declared')
        with self.assertRaises(ValidationRejected):
            self.store.edit(self.session.id, SessionUpdateData(topic='Trees'))

    def test_edit_rejects_inverted_times(self):
        with self.assertRaises(ValidationRejected):
            self.store.edit(self.session.id, SessionUpdateData(end_time='08:00'))

    def test_cancel(self):
        """Test cancelling a scheduled session."""
        cancelled = self.store.cancel(self.session.id, '  Trainer ill  ')
        self.assertEqual(cancelled.status, SessionStatus.CANCELLED)
        self.assertEqual(cancelled.cancellation_reason, 'Trainer ill')

    def test_cancel_requires_reason(self):
        """Test that an empty reason is refused."""
        for reason in ('', '   ', None):
            with self.subTest(reason=reason):
                with self.assertRaises(ValidationRejected):
                    self.store.cancel(self.session.id, reason)
        self.assertEqual(self.store.get(self.session.id).status, SessionStatus.SCHEDULED)

    def test_cancel_verified_session_is_rejected(self):
        """Test that verified sessions are terminal."""
        self.store.verify(self.session.id, '09:55', '12:00', ['A', 'B', 'C'])
        before = self.store.get(self.session.id)

        with self.assertRaises(ValidationRejected):
            self.store.cancel(self.session.id, 'Too late')
        self.assertEqual(self.store.get(self.session.id), before)

    def test_cancel_frees_the_venue(self):
        """Test that a cancelled session no longer blocks its slot."""
        self.store.cancel(self.session.id, 'Trainer ill')
        replacement = self.store.add(make_session(start_time='10:00', end_time='11:00'))
        self.assertEqual(replacement.status, SessionStatus.SCHEDULED)

    def test_complete(self):
        """Test trainer completion only from scheduled."""
        completed = self.store.complete(self.session.id)
        self.assertEqual(completed.status, SessionStatus.COMPLETED)
        with self.assertRaises(ValidationRejected):
            self.store.complete(self.session.id)

    def test_verify_late_and_partial(self):
        """Test verification of a late session with partial topic coverage."""
        verified = self.store.verify(self.session.id, '10:05', '12:00', ['A', 'B'])

        self.assertEqual(verified.status, SessionStatus.VERIFIED)
        self.assertTrue(verified.is_late)
        self.assertFalse(verified.topic_covered)
        self.assertEqual(verified.verified_topics, ['A', 'B'])
        self.assertEqual(verified.actual_start_time, '10:05')

    def test_verify_on_time_full_coverage(self):
        """Test verification after completion with every topic confirmed."""
        self.store.complete(self.session.id)
        verified = self.store.verify(self.session.id, '9:58', '12:00', ['C', 'A', 'B', 'A'])

        self.assertFalse(verified.is_late)
        self.assertTrue(verified.topic_covered)
        self.assertEqual(verified.verified_topics, ['C', 'A', 'B'])

    def test_verify_rejections(self):
        """Test that bad verification input leaves the session untouched."""
        cases = [
            ('', '12:00', []),
            ('10:00', None, []),
            ('25:00', '12:00', []),
            ('11:00', '10:00', []),
            ('10:00', '12:00', ['Z']),
        ]
        for start, end, topics in cases:
            with self.subTest(start=start, end=end, topics=topics):
                with self.assertRaises(ValidationRejected):
                    self.store.verify(self.session.id, start, end, topics)
        self.assertEqual(self.store.get(self.session.id).status, SessionStatus.SCHEDULED)

    def test_verify_twice_is_rejected(self):
        self.store.verify(self.session.id, '09:55', '12:00', [])
        with self.assertRaises(ValidationRejected):
            self.store.verify(self.session.id, '09:55', '12:00', [])

    def test_independent_stores(self):
        """Test that stores do not share state."""
        self.assertEqual(len(SessionStore()), 0)

    def test_store_cannot_be_seeded_without_reporting(self):
        """Test that sessions only enter a store through add or bulk_insert."""
        with self.assertRaises(TypeError):
            SessionStore([make_session(), make_session(start_time='10:00', end_time='11:00')])

    def test_edit_verified_session_recomputes_lateness(self):
        """Test that moving a verified session's start re-derives is_late."""
        self.store.verify(self.session.id, '10:05', '12:00', ['A', 'B'])

        updated = self.store.edit(self.session.id, SessionUpdateData(start_time='10:00'))

        self.assertEqual(updated.status, SessionStatus.VERIFIED)
        self.assertFalse(updated.is_late)
        self.assertEqual(updated.is_late, is_late(minutes_difference(updated.start_time, updated.actual_start_time)))

    def test_edit_verified_session_recomputes_topic_coverage(self):
        """Test that changing planned topics re-derives topic_covered."""
        self.store.verify(self.session.id, '09:55', '12:00', ['A', 'B'])

        updated = self.store.edit(self.session.id, SessionUpdateData(planned_topics=['A', 'B']))
        self.assertTrue(updated.topic_covered)

        updated = self.store.edit(self.session.id, SessionUpdateData(planned_topics=['B', 'D']))
        self.assertFalse(updated.topic_covered)
        self.assertEqual(updated.verified_topics, ['B'])

    def test_verify_with_duplicate_planned_topics(self):
        """Test that repeated planned topics do not block full coverage."""
        session = self.store.add(make_session(venue='Lab 2', planned_topics=['A', 'B', 'A']))

        verified = self.store.verify(session.id, '09:00', '12:00', ['A', 'B'])

        self.assertTrue(verified.topic_covered)
        self.assertEqual(verified.available_topics, ['A', 'B'])


class PatternParsingTests(SimpleTestCase):
    """Test parsing untrusted generator output."""

    def test_parse_weekly_pattern(self):
        """Test coercing camelCase entries and deriving weekdays from dates."""
        templates = parse_weekly_pattern(WEEKLY_PATTERN)

        self.assertEqual(len(templates), 2)
        self.assertEqual(templates[0].start_time, '09:00')
        self.assertEqual(templates[0].planned_topics, ['Percentages', 'Ratios'])
        self.assertEqual(templates[0].weekday, Weekday.MONDAY)
        self.assertEqual(templates[1].weekday, Weekday.WEDNESDAY)
        self.assertEqual(templates[1].trainer_id, '')

    def test_missing_required_fields_fail_generation(self):
        """Test that one invalid entry fails the whole pattern."""
        raw = [WEEKLY_PATTERN[0], {'topic': 'Orphan', 'weekday': 2, 'start_time': '09:00'}]
        with self.assertRaises(GenerationFailed) as ctx:
            parse_weekly_pattern(raw)

        self.assertEqual(len(ctx.exception.errors), 1)
        self.assertEqual(ctx.exception.errors[0]['index'], 1)
        self.assertIn('venue', ctx.exception.errors[0]['errors'])

    def test_every_invalid_entry_is_reported_by_index(self):
        """Test that errors name each invalid entry with its own field messages."""
        raw = [{'topic': 'Orphan'}, WEEKLY_PATTERN[0], {**WEEKLY_PATTERN[1], 'year': 7}]
        with self.assertRaises(GenerationFailed) as ctx:
            parse_weekly_pattern(raw)

        errors = ctx.exception.errors
        self.assertEqual([entry['index'] for entry in errors], [0, 2])
        self.assertIn('batch', errors[0]['errors'])
        self.assertEqual(list(errors[1]['errors']), ['year'])

    def test_entry_without_weekday_or_date(self):
        entry = dict(WEEKLY_PATTERN[0])
        entry.pop('weekday')
        with self.assertRaises(GenerationFailed):
            parse_weekly_pattern([entry])

    def test_non_list_payloads(self):
        for raw in (None, {}, [], 'sessions'):
            with self.subTest(raw=raw):
                with self.assertRaises(GenerationFailed):
                    parse_weekly_pattern(raw)

    def test_missing_trainer_is_repaired(self):
        entry = dict(WEEKLY_PATTERN[0], trainerName=None)
        template = parse_weekly_pattern([entry])[0]
        self.assertEqual(template.trainer_name, '')

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.fake_pattern_generator'})
    def test_get_pattern_generator(self):
        self.assertIs(get_pattern_generator(), fake_pattern_generator)

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': ''})
    def test_get_pattern_generator_unconfigured(self):
        with self.assertRaises(GenerationFailed):
            get_pattern_generator()

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.no_such_generator'})
    def test_get_pattern_generator_unimportable(self):
        with self.assertRaises(GenerationFailed):
            get_pattern_generator()

    def test_session_write_serializer_normalizes_times(self):
        serializer = SessionWriteSerializer(data={
            'topic': 'Graphs', 'batch': 'CSE-A', 'year': 2, 'venue': 'E-301',
            'date': '2024-01-10', 'start_time': '9:00', 'end_time': '10:00',
        })
        self.assertTrue(serializer.is_valid(), serializer.errors)
        session = serializer.save()
        self.assertEqual(session.start_time, '09:00')
        self.assertEqual(session.planned_topics, [])


class GenerationServiceTests(SimpleTestCase):
    """Test schedule generation and configuration checks."""

    def setUp(self):
        self.store = SessionStore()

    def test_generate_single_week(self):
        """Test filling one week when no calendar is available."""
        result = services.generate_schedule(
            self.store, make_config(), generator=fake_pattern_generator,
            week_start=date(2025, 9, 29),
        )

        self.assertEqual(result.pattern_size, 2)
        self.assertFalse(result.expanded_over_calendar)
        self.assertEqual(
            sorted(s.date for s in result.inserted),
            [date(2025, 9, 29), date(2025, 10, 1)],
        )
        self.assertEqual(len(self.store), 2)

    def test_generate_over_calendar(self):
        """Test expanding the generated pattern over instruction days."""
        calendar = import_calendar_rows([
            {'I Semester': 'Instruction', 'From': '29.09.2025', 'To': '11.10.2025'},
            {'I Semester': 'Gandhi Jayanthi break', 'From': '01.10.2025'},
        ]).days

        result = services.generate_schedule(
            self.store, make_config(), generator=fake_pattern_generator, calendar=calendar,
        )

        self.assertTrue(result.expanded_over_calendar)
        self.assertEqual(result.instruction_days, 11)
        self.assertEqual(
            [s.date for s in result.inserted],
            [date(2025, 9, 29), date(2025, 10, 6), date(2025, 10, 8)],
        )

    def test_incomplete_configuration_lists_every_gap(self):
        """Test that all missing curricula are reported together."""
        config = make_config(with_curriculum=False)
        config.sections.append(SectionDetails(id='S2', department='ECE', section='B', semester=3))

        with self.assertRaises(ConfigurationIncomplete) as ctx:
            services.generate_schedule(self.store, config, generator=fake_pattern_generator)

        self.assertEqual(len(ctx.exception.gaps), 2)
        self.assertIn('CSE semester 5', ctx.exception.gaps[0])
        self.assertIn('ECE semester 3', ctx.exception.gaps[1])

    def test_generator_errors_become_generation_failures(self):
        with self.assertRaises(GenerationFailed):
            services.generate_schedule(self.store, make_config(), generator=failing_pattern_generator)
        self.assertEqual(len(self.store), 0)

    def test_cancelled_generation_commits_nothing(self):
        """Test that a cancelled generation leaves the store untouched."""
        cancel_event = threading.Event()
        cancel_event.set()

        with self.assertRaises(GenerationCancelled):
            services.generate_schedule(
                self.store, make_config(), generator=fake_pattern_generator,
                week_start=date(2025, 9, 29), cancel_event=cancel_event,
            )
        self.assertEqual(len(self.store), 0)

    def test_import_calendar_file_rejects_unknown_type(self):
        with self.assertRaises(ValidationRejected):
            services.import_calendar_file(StringIO('x'), filename='almanac.pdf')

    def test_import_calendar_csv(self):
        upload = SimpleUploadedFile(
            'almanac.csv',
            b'I Semester,From,To\nDussera Vacation,28.09.2025,05.10.2025\n',
        )
        result = services.import_calendar_file(upload)
        self.assertEqual(result.total_days, 6)


class SessionAPITests(APISimpleTestCase):
    """Test the session endpoints."""

    def setUp(self):
        self.state = apps.get_app_config('scheduling')
        self.state.reset()
        self.payload = {
            'topic': 'Data Structures',
            'planned_topics': ['A', 'B', 'C'],
            'batch': 'CSE-A',
            'year': 2,
            'venue': 'E-301',
            'date': '2024-01-10',
            'start_time': '09:55',
            'end_time': '12:00',
            'trainer_name': 'Priya Raman',
        }

    def tearDown(self):
        self.state.reset()

    def create_session(self, **overrides):
        response = self.client.post('/api/sessions/', {**self.payload, **overrides}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data

    def test_create_session(self):
        """Test creating a session through the API."""
        data = self.create_session()
        self.assertEqual(data['status'], 'SCHEDULED')
        self.assertEqual(data['trainer_id'], '')
        self.assertIsNone(data['is_late'])
        self.assertEqual(len(self.state.session_store), 1)

    def test_create_conflicting_session(self):
        """Test that a double booking is refused with the blocking session named."""
        first = self.create_session()
        response = self.client.post(
            '/api/sessions/', {**self.payload, 'start_time': '11:00', 'end_time': '13:00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn(first['id'], response.data['detail'])

    def test_create_invalid_session(self):
        response = self.client.post(
            '/api/sessions/', {**self.payload, 'end_time': '09:00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_time', response.data)

    def test_list_sessions_with_filters(self):
        """Test filtering the session list."""
        self.create_session()
        other = self.create_session(venue='Lab 2', year=3, trainer_name='Arjun Mehta')

        response = self.client.get('/api/sessions/', {'trainer': 'arjun'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([s['id'] for s in response.data], [other['id']])

        response = self.client.get('/api/sessions/', {'date': '2024-01-10'})
        self.assertEqual(len(response.data), 2)

        response = self.client.get('/api/sessions/', {'year': 7})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_session_detail(self):
        created = self.create_session()
        response = self.client.get(f"/api/sessions/{created['id']}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['topic'], 'Data Structures')

    def test_get_missing_session(self):
        response = self.client.get('/api/sessions/missing/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_edit_session(self):
        """Test editing a session's slot."""
        created = self.create_session()
        response = self.client.patch(
            f"/api/sessions/{created['id']}/",
            {'start_time': '14:00', 'end_time': '15:00'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['start_time'], '14:00')

    def test_cancel_session(self):
        """Test cancelling with and without a reason."""
        created = self.create_session()
        url = f"/api/sessions/{created['id']}/cancel/"

        response = self.client.post(url, {'reason': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {'reason': 'Trainer ill'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')
        self.assertEqual(response.data['cancellation_reason'], 'Trainer ill')

        response = self.client.post(url, {'reason': 'Again'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['session_id'], created['id'])

    def test_complete_and_verify_session(self):
        """Test the trainer and lab assistant steps."""
        created = self.create_session()

        response = self.client.post(f"/api/sessions/{created['id']}/complete/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'COMPLETED')

        response = self.client.post(
            f"/api/sessions/{created['id']}/verify/",
            {'actual_start_time': '10:05', 'actual_end_time': '12:00', 'verified_topics': ['A', 'B']},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'VERIFIED')
        self.assertTrue(response.data['is_late'])
        self.assertFalse(response.data['topic_covered'])

    def test_verify_requires_times(self):
        created = self.create_session()
        response = self.client.post(
            f"/api/sessions/{created['id']}/verify/", {'verified_topics': ['A']}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('actual_start_time', response.data)

    def test_export_csv(self):
        """Test downloading the session list as CSV."""
        self.create_session()
        response = self.client.get('/api/sessions/export/', {'venue': 'E-301'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('training_sessions.csv', response['Content-Disposition'])
        content = response.content.decode('utf-8')
        self.assertIn('Venue', content.splitlines()[0])
        self.assertIn('E-301', content)

    def test_export_xlsx(self):
        self.create_session()
        response = self.client.get('/api/sessions/export/', {'file_type': 'xlsx'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.content.startswith(b'PK'))

    def test_sessions_needing_attention(self):
        """Test listing cancelled and unassigned sessions per department."""
        assigned = self.create_session()
        unassigned = self.create_session(venue='Lab 2', trainer_name='')
        cancelled = self.create_session(venue='Lab 3', batch='ECE-A')
        self.client.post(f"/api/sessions/{cancelled['id']}/cancel/", {'reason': 'Trainer ill'}, format='json')

        response = self.client.get('/api/sessions/attention/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = {s['id'] for s in response.data}
        self.assertEqual(ids, {unassigned['id'], cancelled['id']})
        self.assertNotIn(assigned['id'], ids)

        response = self.client.get('/api/sessions/attention/', {'department': 'ECE'})
        self.assertEqual([s['id'] for s in response.data], [cancelled['id']])


class CalendarAPITests(APISimpleTestCase):
    """Test the academic calendar endpoints."""

    def setUp(self):
        self.state = apps.get_app_config('scheduling')
        self.state.reset()

    def tearDown(self):
        self.state.reset()

    def upload(self, content, name='almanac.csv'):
        return self.client.post(
            '/api/calendar/',
            {'file': SimpleUploadedFile(name, content)},
            format='multipart'
        )

    def test_upload_calendar(self):
        """Test replacing the calendar from an uploaded almanac."""
        response = self.upload(
            b'I Semester,From,To\n'
            b'Commencement of Instruction,22.09.2025,27.09.2025\n'
            b'Dussera Vacation,28.09.2025,05.10.2025\n'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['total_days'], 12)
        self.assertEqual(response.data['instruction_days'], 6)
        self.assertEqual(len(self.state.academic_calendar), 12)

        response = self.client.get('/api/calendar/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['HOLIDAY'], 6)
        self.assertEqual(response.data['days'][0]['type'], 'INSTRUCTION')
        self.assertEqual(response.data['days'][0]['day_of_week'], 'Monday')

    def test_upload_without_valid_rows(self):
        response = self.upload(b'Notes\nnothing useful\n')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('file', response.data)
        self.assertEqual(self.state.academic_calendar, [])

    def test_upload_unsupported_file(self):
        response = self.upload(b'%PDF', name='almanac.pdf')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ScheduleGenerationAPITests(APISimpleTestCase):
    """Test the schedule generation endpoint."""

    def setUp(self):
        self.state = apps.get_app_config('scheduling')
        self.state.reset()
        self.payload = {
            'curriculum': [{'department': 'CSE', 'semester': 5, 'courses': ['Aptitude']}],
            'sections': [{'id': 'S1', 'department': 'CSE', 'section': 'A', 'semester': 5}],
            'week_start': '2025-09-29',
            'use_calendar': False,
        }

    def tearDown(self):
        self.state.reset()

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.fake_pattern_generator'})
    def test_generate_schedule(self):
        """Test generating a week of sessions."""
        response = self.client.post('/api/schedule/generate/', self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['pattern_size'], 2)
        self.assertEqual(len(response.data['inserted']), 2)
        self.assertEqual(response.data['rejected'], [])
        self.assertEqual(len(self.state.session_store), 2)

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.fake_pattern_generator'})
    def test_generate_reports_conflicts_with_existing_sessions(self):
        """Test that clashes with existing sessions come back as rejected."""
        self.state.session_store.add(make_session(date=date(2025, 9, 29), start_time='10:00', end_time='11:00'))

        response = self.client.post('/api/schedule/generate/', self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['inserted']), 1)
        self.assertEqual(len(response.data['rejected']), 1)
        self.assertEqual(response.data['rejected'][0]['conflicts_with']['venue'], 'E-301')

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.fake_pattern_generator'})
    def test_generate_with_incomplete_configuration(self):
        payload = {**self.payload, 'curriculum': []}
        response = self.client.post('/api/schedule/generate/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('CSE semester 5', response.data['configuration'][0])

    @override_settings(SCHEDULING={'PATTERN_GENERATOR': 'scheduling.tests.failing_pattern_generator'})
    def test_generator_failure(self):
        response = self.client.post('/api/schedule/generate/', self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertIn('model quota exceeded', response.data['detail'])
        self.assertEqual(len(self.state.session_store), 0)


class ManagementCommandTests(SimpleTestCase):
    """Test management commands."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.almanac = self.write(
            'almanac.csv',
            'I Semester,From,To\n'
            'Commencement of Instruction,29.09.2025,03.10.2025\n'
            'Dussera Vacation,04.10.2025,05.10.2025\n'
        )

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def write(self, name, content):
        path = os.path.join(self.tmpdir, name)
        with open(path, 'w', encoding='utf-8') as handle:
            handle.write(content)
        return path

    def test_import_calendar_command(self):
        """Test summarizing an almanac from the command line."""
        out = StringIO()
        call_command('import_calendar', self.almanac, '--json', stdout=out)

        output = out.getvalue()
        self.assertIn('Rows processed: 2', output)
        self.assertIn('Successfully imported 6 day(s), 5 of them instruction days', output)
        self.assertIn('"type": "HOLIDAY"', output)

    def test_import_calendar_command_rejects_bad_file(self):
        path = self.write('almanac.txt', 'nothing')
        with self.assertRaises(CommandError):
            call_command('import_calendar', path, stdout=StringIO())

    def test_expand_schedule_command(self):
        """Test expanding a saved pattern and exporting the result."""
        pattern = self.write('pattern.json', json.dumps(WEEKLY_PATTERN))
        output_path = os.path.join(self.tmpdir, 'schedule.csv')
        out = StringIO()

        call_command('expand_schedule', pattern, self.almanac, '--output', output_path, stdout=out)

        self.assertIn('Successfully expanded 2 session(s), 0 rejected', out.getvalue())
        with open(output_path, encoding='utf-8') as handle:
            lines = handle.read().splitlines()
        self.assertEqual(len(lines), 3)

    def test_expand_schedule_command_rest_day(self):
        """Test that the rest day option drops that weekday from the almanac."""
        pattern = self.write('pattern.json', json.dumps(WEEKLY_PATTERN))
        out = StringIO()

        call_command('expand_schedule', pattern, self.almanac, '--rest-day', '1', stdout=out)

        self.assertIn('Successfully expanded 1 session(s), 0 rejected', out.getvalue())

    def test_expand_schedule_command_rejects_invalid_pattern(self):
        pattern = self.write('pattern.json', json.dumps([{'topic': 'Orphan'}]))
        with self.assertRaises(CommandError):
            call_command('expand_schedule', pattern, self.almanac, stdout=StringIO())


class ExportTests(SimpleTestCase):
    """Test spreadsheet export."""

    def test_export_empty_csv_has_header(self):
        content = export_sessions([], 'csv').decode('utf-8')
        self.assertTrue(content.startswith('ID,Date,Start,End'))

    def test_export_rejects_unknown_type(self):
        with self.assertRaises(ValueError):
            export_sessions([make_session()], 'pdf')
