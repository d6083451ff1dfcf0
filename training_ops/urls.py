"""
URL configuration for training_ops project.
"""
from django.urls import path, include

urlpatterns = [
    path('api/', include('scheduling.urls')),
]
