"""Views for the training scheduling API."""

from django.apps import apps
from django.http import HttpResponse

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .calendar_importer import summarize_calendar
from .serializers import (
    CalendarDaySerializer,
    CalendarImportResultSerializer,
    CalendarUploadSerializer,
    GenerationRequestSerializer,
    GenerationResultSerializer,
    SessionAttentionQuerySerializer,
    SessionCancelSerializer,
    SessionExportQuerySerializer,
    SessionFilterSerializer,
    SessionUpdateSerializer,
    SessionVerifySerializer,
    SessionWriteSerializer,
    TrainingSessionSerializer,
)
from . import services
from .spreadsheets import EXPORT_CONTENT_TYPES, export_sessions


class SchedulingStateMixin:
    """Access to the store and calendar created by the scheduling app config."""

    @property
    def app_state(self):
        return apps.get_app_config('scheduling')

    @property
    def store(self):
        return self.app_state.session_store


class SessionListCreateView(SchedulingStateMixin, APIView):
    """
    List sessions or create one by hand.

    GET /api/sessions/?venue=&trainer=&year=&status=&batch=&date= - Filtered list
    POST /api/sessions/ - Create a session
    """

    def get(self, request):
        """List sessions matching the query filters."""
        query_serializer = SessionFilterSerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        sessions = self.store.filter(**query_serializer.filters())
        serializer = TrainingSessionSerializer(sessions, many=True)
        return Response(serializer.data)

    def post(self, request):
        """Create a session; rejected if it double-books its venue."""
        serializer = SessionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = self.store.add(serializer.save())

        response_serializer = TrainingSessionSerializer(session)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class SessionAttentionView(SchedulingStateMixin, APIView):
    """
    Sessions the operations team must act on.

    GET /api/sessions/attention/?department= - Cancelled or unassigned sessions
    """

    def get(self, request):
        query_serializer = SessionAttentionQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        sessions = self.store.needing_attention(query_serializer.validated_data.get('department'))
        serializer = TrainingSessionSerializer(sessions, many=True)
        return Response(serializer.data)


class SessionDetailView(SchedulingStateMixin, APIView):
    """
    Retrieve or edit a session.

    GET /api/sessions/{id}/ - Retrieve session
    PATCH /api/sessions/{id}/ - Edit time, topic or placement
    """

    def get(self, request, pk):
        session = self.store.get(pk)
        return Response(TrainingSessionSerializer(session).data)

    def patch(self, request, pk):
        serializer = SessionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = self.store.edit(pk, serializer.save())
        return Response(TrainingSessionSerializer(session).data)


class SessionCancelView(SchedulingStateMixin, APIView):
    """
    Cancel a session with a reason.

    POST /api/sessions/{id}/cancel/
    """

    def post(self, request, pk):
        serializer = SessionCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = self.store.cancel(pk, serializer.validated_data['reason'])
        return Response(TrainingSessionSerializer(session).data)


class SessionCompleteView(SchedulingStateMixin, APIView):
    """
    Mark a session as completed by its trainer.

    POST /api/sessions/{id}/complete/
    """

    def post(self, request, pk):
        session = self.store.complete(pk)
        return Response(TrainingSessionSerializer(session).data)


class SessionVerifyView(SchedulingStateMixin, APIView):
    """
    Record a lab assistant's verification.

    POST /api/sessions/{id}/verify/
    """

    def post(self, request, pk):
        serializer = SessionVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        session = self.store.verify(
            pk,
            data['actual_start_time'],
            data['actual_end_time'],
            data['verified_topics'],
        )
        return Response(TrainingSessionSerializer(session).data)


class SessionExportView(SchedulingStateMixin, APIView):
    """
    Download the filtered session list.

    GET /api/sessions/export/?file_type=csv|xlsx&<listing filters>
    """

    def get(self, request):
        query_serializer = SessionExportQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        file_type = query_serializer.validated_data['file_type']
        sessions = self.store.filter(**query_serializer.filters())

        response = HttpResponse(
            export_sessions(sessions, file_type),
            content_type=EXPORT_CONTENT_TYPES[file_type],
        )
        response['Content-Disposition'] = f'attachment; filename="training_sessions.{file_type}"'
        return response


class AcademicCalendarView(SchedulingStateMixin, APIView):
    """
    Show or replace the academic calendar.

    GET /api/calendar/ - Current calendar days and counts per type
    POST /api/calendar/ - Upload an almanac spreadsheet (multipart "file")
    """

    def get(self, request):
        days = self.app_state.academic_calendar
        return Response({
            'summary': summarize_calendar(days),
            'days': CalendarDaySerializer(days, many=True).data,
        })

    def post(self, request):
        serializer = CalendarUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        upload = serializer.validated_data['file']
        result = services.import_calendar_file(
            upload,
            filename=upload.name,
            rest_day=serializer.validated_data.get('rest_day'),
        )
        self.app_state.academic_calendar = result.days

        response_serializer = CalendarImportResultSerializer(result)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class ScheduleGenerateView(SchedulingStateMixin, APIView):
    """
    Generate the master schedule from a configuration bundle.

    POST /api/schedule/generate/
    """

    def post(self, request):
        serializer = GenerationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        calendar = (
            self.app_state.academic_calendar
            if serializer.validated_data['use_calendar'] else None
        )
        result = services.generate_schedule(
            self.store,
            serializer.to_config(),
            calendar=calendar,
            week_start=serializer.validated_data.get('week_start'),
        )

        response_serializer = GenerationResultSerializer(result)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)
