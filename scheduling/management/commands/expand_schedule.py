"""
Management command to expand a saved weekly pattern over an almanac.

Useful for checking a generated pattern against the semester before it is
loaded into the running service.
"""

import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from scheduling import services
from scheduling.exceptions import SchedulingError
from scheduling.expansion import expand_weekly_pattern
from scheduling.generators import parse_weekly_pattern
from scheduling.spreadsheets import export_sessions
from scheduling.store import SessionStore


class Command(BaseCommand):
    help = 'Expand a weekly pattern (JSON) over an academic almanac and report conflicts'

    def add_arguments(self, parser):
        parser.add_argument('pattern', help='Path to a JSON list of weekly session templates')
        parser.add_argument('almanac', help='Path to the almanac spreadsheet')
        parser.add_argument(
            '--output',
            help='Write the accepted sessions to this .csv or .xlsx file'
        )
        parser.add_argument(
            '--rest-day',
            type=int,
            choices=range(7),
            default=None,
            help='Weekday to skip inside almanac date ranges, 0 = Sunday (default: settings)'
        )

    def handle(self, *args, **options):
        output = options.get('output')
        file_type = None
        if output:
            file_type = Path(output).suffix.lower().lstrip('.')
            if file_type not in ('csv', 'xlsx'):
                raise CommandError('--output must end in .csv or .xlsx')

        try:
            with open(options['pattern'], encoding='utf-8') as handle:
                raw_pattern = json.load(handle)
        except (OSError, ValueError) as exc:
            raise CommandError(f"Could not read pattern file: {exc}") from exc

        try:
            templates = parse_weekly_pattern(raw_pattern)
            calendar = services.import_calendar_file(
                options['almanac'], rest_day=options['rest_day']
            ).days
        except SchedulingError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(
            f'Expanding {len(templates)} template(s) over {len(calendar)} calendar day(s)...'
        )

        store = SessionStore()
        result = store.bulk_insert(expand_weekly_pattern(templates, calendar))

        for rejected in result.rejected:
            self.stdout.write(self.style.WARNING(f'Rejected: {rejected.reason}'))

        if output:
            Path(output).write_bytes(export_sessions(store.all(), file_type))
            self.stdout.write(f'Wrote {len(store)} session(s) to {output}')

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully expanded {len(result.inserted)} session(s), '
                f'{len(result.rejected)} rejected'
            )
        )
