"""
Serializers for the training scheduling API.

Write serializers also parse untrusted input: a generated weekly pattern
passes through TemplateSessionSerializer before it can reach the store.
"""

import re
from collections.abc import Mapping

from rest_framework import serializers

from .models import SessionStatus, SessionTemplate, TrainingSession, Weekday
from .time_utils import normalize_clock, to_minutes
from .types import (
    DAY_SESSIONS,
    TRAINER_TYPES,
    TRAINING_TYPES,
    CurriculumMapping,
    GenerationConfig,
    SectionDetails,
    SessionUpdateData,
    Student,
    TimingRule,
    TrainerMapping,
    TrainingTypeMapping,
    VenueMapping,
)


_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')

EXPORT_FILE_TYPES = ('csv', 'xlsx')


def snake_case_keys(data):
    """Rewrite camelCase keys ("startTime") as snake_case ("start_time")."""
    if not isinstance(data, Mapping):
        return data
    return {
        _CAMEL_BOUNDARY.sub('_', key).lower() if isinstance(key, str) else key: value
        for key, value in data.items()
    }


class ClockTimeField(serializers.CharField):
    """24-hour clock time, normalized to "HH:MM"."""

    default_error_messages = {
        'invalid_clock': 'Enter a valid 24-hour time in HH:MM format.',
    }

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            return normalize_clock(value)
        except ValueError:
            self.fail('invalid_clock')


def _validate_time_order(data, start_key='start_time', end_key='end_time'):
    start, end = data.get(start_key), data.get(end_key)
    if start and end and to_minutes(start) >= to_minutes(end):
        raise serializers.ValidationError({end_key: 'End time must be after start time.'})


class TrainingSessionSerializer(serializers.Serializer):
    """Serializer for reading/displaying TrainingSession (output)."""

    id = serializers.CharField()
    topic = serializers.CharField()
    planned_topics = serializers.ListField(child=serializers.CharField())
    batch = serializers.CharField()
    year = serializers.IntegerField()
    venue = serializers.CharField()
    date = serializers.DateField()
    start_time = serializers.CharField()
    end_time = serializers.CharField()
    trainer_id = serializers.CharField()
    trainer_name = serializers.CharField()
    status = serializers.CharField()
    is_placement_drive = serializers.BooleanField()
    cancellation_reason = serializers.CharField()
    actual_start_time = serializers.CharField()
    actual_end_time = serializers.CharField()
    topic_covered = serializers.BooleanField()
    verified_topics = serializers.ListField(child=serializers.CharField())
    is_late = serializers.BooleanField()


class SessionFieldsSerializer(serializers.Serializer):
    """Fields shared by manual sessions and generated pattern entries."""

    topic = serializers.CharField(max_length=200)
    planned_topics = serializers.ListField(
        child=serializers.CharField(max_length=200),
        allow_null=True,
        default=list
    )
    batch = serializers.CharField(max_length=50)
    year = serializers.IntegerField(min_value=1, max_value=4)
    venue = serializers.CharField(max_length=100)
    trainer_id = serializers.CharField(allow_blank=True, allow_null=True, default='')
    trainer_name = serializers.CharField(allow_blank=True, allow_null=True, default='')
    is_placement_drive = serializers.BooleanField(default=False)
    start_time = ClockTimeField()
    end_time = ClockTimeField()

    def validate(self, data):
        """Repair missing trainer data and check the time slot."""
        data['trainer_id'] = (data.get('trainer_id') or '').strip()
        data['trainer_name'] = (data.get('trainer_name') or '').strip()
        data['planned_topics'] = data.get('planned_topics') or []
        _validate_time_order(data)
        return data


class SessionWriteSerializer(SessionFieldsSerializer):
    """Serializer for creating a session by hand."""

    date = serializers.DateField()

    def create(self, validated_data):
        return TrainingSession(**validated_data)


class TemplateSessionSerializer(SessionFieldsSerializer):
    """
    Parser for one entry of a generated weekly pattern.

    Keys may be camelCase or snake_case. Unknown keys such as id or status
    are dropped. The weekday comes from an explicit weekday (0=Sunday) or,
    failing that, from the entry's date, whose value is otherwise discarded.
    """

    weekday = serializers.IntegerField(min_value=0, max_value=6, required=False, allow_null=True)
    date = serializers.DateField(required=False, allow_null=True)

    def to_internal_value(self, data):
        return super().to_internal_value(snake_case_keys(data))

    def validate(self, data):
        data = super().validate(data)
        weekday = data.get('weekday')
        session_date = data.pop('date', None)

        if weekday is None:
            if session_date is None:
                raise serializers.ValidationError({'weekday': 'A weekday or a date is required.'})
            weekday = Weekday.of(session_date)

        data['weekday'] = Weekday(weekday)
        return data

    def create(self, validated_data):
        return SessionTemplate(**validated_data)


class SessionUpdateSerializer(serializers.Serializer):
    """Serializer for editing a session."""

    topic = serializers.CharField(max_length=200, required=False)
    start_time = ClockTimeField(required=False)
    end_time = ClockTimeField(required=False)
    venue = serializers.CharField(max_length=100, required=False)
    date = serializers.DateField(required=False)
    trainer_id = serializers.CharField(required=False, allow_blank=True)
    trainer_name = serializers.CharField(required=False, allow_blank=True)
    planned_topics = serializers.ListField(
        child=serializers.CharField(max_length=200),
        required=False
    )

    def validate(self, data):
        _validate_time_order(data)
        return data

    def create(self, validated_data):
        return SessionUpdateData(**validated_data)


class SessionCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class SessionVerifySerializer(serializers.Serializer):
    """Serializer for a lab assistant's verification."""

    actual_start_time = ClockTimeField()
    actual_end_time = ClockTimeField()
    verified_topics = serializers.ListField(
        child=serializers.CharField(max_length=200),
        default=list
    )

    def validate(self, data):
        _validate_time_order(data, 'actual_start_time', 'actual_end_time')
        return data


class SessionFilterSerializer(serializers.Serializer):
    """Serializer for session listing query parameters."""

    venue = serializers.CharField(required=False)
    trainer = serializers.CharField(required=False)
    year = serializers.IntegerField(min_value=1, max_value=4, required=False)
    status = serializers.ChoiceField(choices=SessionStatus.choices, required=False)
    batch = serializers.CharField(required=False)
    date = serializers.DateField(required=False)

    def filters(self):
        """Validated filters as SessionStore.filter keyword arguments."""
        data = dict(self.validated_data)
        data.pop('file_type', None)
        if 'date' in data:
            data['on_date'] = data.pop('date')
        return data


class SessionExportQuerySerializer(SessionFilterSerializer):
    file_type = serializers.ChoiceField(choices=EXPORT_FILE_TYPES, default='csv')


class SessionAttentionQuerySerializer(serializers.Serializer):
    department = serializers.CharField(required=False)


class RejectedSessionSerializer(serializers.Serializer):
    session = TrainingSessionSerializer()
    conflicts_with = TrainingSessionSerializer(allow_null=True)
    reason = serializers.CharField()


class CalendarDaySerializer(serializers.Serializer):
    date = serializers.DateField()
    day_of_week = serializers.CharField()
    type = serializers.CharField(source='day_type')
    description = serializers.CharField()


class CalendarUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    rest_day = serializers.IntegerField(min_value=0, max_value=6, required=False)


class CalendarImportResultSerializer(serializers.Serializer):
    rows_processed = serializers.IntegerField()
    rows_skipped = serializers.IntegerField()
    total_days = serializers.IntegerField()
    instruction_days = serializers.IntegerField()
    duplicate_dates = serializers.ListField(child=serializers.DateField())
    days = CalendarDaySerializer(many=True)


class StudentSerializer(serializers.Serializer):
    roll_no = serializers.CharField(max_length=20)
    name = serializers.CharField(max_length=200)


class TrainerMappingSerializer(serializers.Serializer):
    trainer_id = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=200)
    type = serializers.ChoiceField(choices=TRAINER_TYPES)
    courses = serializers.ListField(child=serializers.CharField(max_length=200), default=list)


class VenueMappingSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=50)
    name = serializers.CharField(max_length=100)
    department = serializers.CharField(max_length=50)
    poc = serializers.CharField(allow_blank=True, default='')
    is_exclusive_tnp = serializers.BooleanField(default=False)
    capacity = serializers.IntegerField(min_value=0, default=0)


class CurriculumMappingSerializer(serializers.Serializer):
    department = serializers.CharField(max_length=50)
    semester = serializers.IntegerField(min_value=1, max_value=8)
    courses = serializers.ListField(child=serializers.CharField(max_length=200), default=list)


class TimingRuleSerializer(serializers.Serializer):
    semester = serializers.IntegerField(min_value=1, max_value=8)
    session = serializers.ChoiceField(choices=DAY_SESSIONS)
    start_time = ClockTimeField()
    end_time = ClockTimeField()

    def validate(self, data):
        _validate_time_order(data)
        return data


class TrainingTypeMappingSerializer(serializers.Serializer):
    training_type = serializers.ChoiceField(choices=TRAINING_TYPES)
    course = serializers.CharField(max_length=200)
    allowed_trainer_types = serializers.ListField(
        child=serializers.ChoiceField(choices=TRAINER_TYPES),
        default=list
    )


class SectionDetailsSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=50)
    department = serializers.CharField(max_length=50)
    section = serializers.CharField(max_length=10)
    semester = serializers.IntegerField(min_value=1, max_value=8)
    total_strength = serializers.IntegerField(min_value=0, default=0)
    students = StudentSerializer(many=True, default=list)


class GenerationRequestSerializer(serializers.Serializer):
    """Serializer for a schedule generation request: configuration plus options."""

    trainers = TrainerMappingSerializer(many=True, default=list)
    venues = VenueMappingSerializer(many=True, default=list)
    curriculum = CurriculumMappingSerializer(many=True, default=list)
    timings = TimingRuleSerializer(many=True, default=list)
    training_types = TrainingTypeMappingSerializer(many=True, default=list)
    sections = SectionDetailsSerializer(many=True, default=list)
    week_start = serializers.DateField(required=False, allow_null=True)
    use_calendar = serializers.BooleanField(default=True)

    def to_config(self) -> GenerationConfig:
        """Build the generator's configuration bundle from validated data."""
        data = self.validated_data
        return GenerationConfig(
            trainers=[TrainerMapping(**item) for item in data['trainers']],
            venues=[VenueMapping(**item) for item in data['venues']],
            curriculum=[CurriculumMapping(**item) for item in data['curriculum']],
            timings=[TimingRule(**item) for item in data['timings']],
            training_types=[TrainingTypeMapping(**item) for item in data['training_types']],
            sections=[
                SectionDetails(**{
                    **item,
                    'students': [Student(**student) for student in item['students']],
                })
                for item in data['sections']
            ],
        )


class GenerationResultSerializer(serializers.Serializer):
    pattern_size = serializers.IntegerField()
    instruction_days = serializers.IntegerField()
    expanded_over_calendar = serializers.BooleanField()
    inserted = TrainingSessionSerializer(many=True)
    rejected = RejectedSessionSerializer(many=True)
