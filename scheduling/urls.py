"""
URL routing for the scheduling API.
"""

from django.urls import path
from .views import (
    AcademicCalendarView,
    ScheduleGenerateView,
    SessionAttentionView,
    SessionCancelView,
    SessionCompleteView,
    SessionDetailView,
    SessionExportView,
    SessionListCreateView,
    SessionVerifyView,
)

urlpatterns = [
    path('sessions/', SessionListCreateView.as_view(), name='session-list-create'),
    path('sessions/export/', SessionExportView.as_view(), name='session-export'),
    path('sessions/attention/', SessionAttentionView.as_view(), name='session-attention'),
    path('sessions/<str:pk>/', SessionDetailView.as_view(), name='session-detail'),
    path('sessions/<str:pk>/cancel/', SessionCancelView.as_view(), name='session-cancel'),
    path('sessions/<str:pk>/complete/', SessionCompleteView.as_view(), name='session-complete'),
    path('sessions/<str:pk>/verify/', SessionVerifyView.as_view(), name='session-verify'),
    path('calendar/', AcademicCalendarView.as_view(), name='academic-calendar'),
    path('schedule/generate/', ScheduleGenerateView.as_view(), name='schedule-generate'),
]
