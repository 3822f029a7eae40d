"""
Management command to generate rides from repeating rides.

This command should be run periodically (e.g., monthly via cron) so that
next month's rides exist before members want to join them.
"""

import uuid

from dateutil.parser import isoparse
from django.core.management.base import BaseCommand, CommandError
from rides import services


class Command(BaseCommand):
    help = 'Generate rides from repeating rides for the month starting at --date'

    def add_arguments(self, parser):
        parser.add_argument(
            '--schedule-id',
            default=None,
            help='Only generate rides for this repeating ride'
        )
        parser.add_argument(
            '--date',
            default=None,
            help='ISO-8601 date to generate from (default: first day of next month)'
        )

    def handle(self, *args, **options):
        schedule_id = options['schedule_id']
        date = options['date']

        if schedule_id:
            try:
                uuid.UUID(schedule_id)
            except ValueError:
                raise CommandError(f'Invalid schedule id: {schedule_id}')

        if date:
            try:
                isoparse(date)
            except ValueError:
                raise CommandError(f'Invalid date: {date}')

        report = services.generate_rides(schedule_id=schedule_id, date=date)

        self.stdout.write(
            f'Generating rides from {report.generate_from_date}...'
        )

        for result in report.results:
            if result.error:
                self.stdout.write(
                    self.style.ERROR(f'  {result.schedule_id}: {result.error}')
                )
            else:
                self.stdout.write(f'  {result.schedule_id}: {result.count} ride(s)')

        if not report.success:
            raise CommandError(
                f'{report.error_count} repeating ride(s) failed to generate'
            )

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully generated {report.ride_count} new ride(s)'
            )
        )
