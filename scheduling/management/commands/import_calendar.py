"""
Management command to import an academic almanac spreadsheet.

Reports how the file expanded into calendar days without touching the
running application's calendar.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from scheduling import services
from scheduling.exceptions import SchedulingError
from scheduling.serializers import CalendarDaySerializer


class Command(BaseCommand):
    help = 'Import an academic almanac (.xlsx, .xls or .csv) and summarize its calendar days'

    def add_arguments(self, parser):
        parser.add_argument('file', help='Path to the almanac spreadsheet')
        parser.add_argument(
            '--rest-day',
            type=int,
            choices=range(7),
            default=None,
            help='Weekday to skip inside date ranges, 0 = Sunday (default: settings)'
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Print the normalized calendar days as JSON'
        )

    def handle(self, *args, **options):
        path = options['file']

        self.stdout.write(f'Importing academic calendar from {path}...')

        try:
            result = services.import_calendar_file(path, rest_day=options['rest_day'])
        except SchedulingError as exc:
            raise CommandError(str(exc)) from exc

        if options['json']:
            days = CalendarDaySerializer(result.days, many=True).data
            self.stdout.write(json.dumps(days, indent=2))

        self.stdout.write(f'Rows processed: {result.rows_processed}')
        self.stdout.write(f'Rows skipped: {result.rows_skipped}')
        if result.duplicate_dates:
            dates = ', '.join(day.isoformat() for day in result.duplicate_dates)
            self.stdout.write(self.style.WARNING(f'Dates covered by more than one row: {dates}'))

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully imported {result.total_days} day(s), '
                f'{result.instruction_days} of them instruction days'
            )
        )
