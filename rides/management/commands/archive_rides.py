"""
Management command to archive past rides.

Run periodically (e.g., nightly via cron) to move rides dated before today,
together with their riders, out of the rides table.
"""

from datetime import timezone as dt_timezone

from dateutil.parser import isoparse
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from rides import services


class Command(BaseCommand):
    help = 'Move rides dated before --date (default: now) and their riders to the archive'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            default=None,
            help='ISO-8601 date; rides before it are archived (default: now)'
        )

    def handle(self, *args, **options):
        run_date = None
        if options['date']:
            try:
                run_date = isoparse(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}")
            if timezone.is_naive(run_date):
                run_date = timezone.make_aware(run_date, dt_timezone.utc)

        result = services.archive_rides(run_date)

        self.stdout.write(
            self.style.SUCCESS(
                f'Archived {result.moved_rides} ride(s) and '
                f'{result.moved_riders} rider(s) dated before {result.run_date.isoformat()}'
            )
        )
