from django.apps import AppConfig


class SchedulingConfig(AppConfig):
    """
    Holds the application's scheduling state.

    One SessionStore and one academic calendar are created at start-up and
    handed to every view through this config.
    """

    name = 'scheduling'
    verbose_name = 'Training scheduling'

    def ready(self):
        from .store import SessionStore

        self.session_store = SessionStore()
        self.academic_calendar = []

    def reset(self):
        """Drop all sessions and the imported calendar."""
        self.session_store.clear()
        self.academic_calendar = []
