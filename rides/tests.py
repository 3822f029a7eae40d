"""
Tests for the club rides app.

Tests cover:
- Recurrence expansion (period window, winter time, ride fields, DTSTART advancement)
- RepeatingRide and Ride models and managers
- Service layer (ride generation, repeating ride and ride operations)
- API endpoints (repeating rides, generate, rides)
- Management commands
"""

import calendar
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from .exceptions import InvalidSchedule
from .models import ArchivedRide, ArchivedRider, RepeatingRide, Ride, Rider
from .recurrence import (
    apply_winter_time,
    generate_ride,
    get_next_month_start,
    get_period_window,
    is_winter,
    make_rides_in_period,
    parse_schedule,
    update_schedule_start_date,
)
from .services import (
    archive_rides,
    cancel_ride,
    create_repeating_ride,
    create_rides_from_set,
    generate_rides,
    get_rides_in_range,
    join_ride,
    leave_ride,
    update_rider_notes,
)
from .types import GENERATE_ERROR_MESSAGE, RepeatingRideData, RideSet


UTC = dt_timezone.utc
TEMPLATE_ID = uuid.UUID('7f0c1a52-93a4-4c61-9a5e-2f4b8d1e6c30')
MARCH_2026 = '2026-03-01T00:00:00.000Z'


def make_template(**overrides):
    """Build an unsaved repeating ride with every optional field set."""
    fields = {
        'id': TEMPLATE_ID,
        'name': 'Weekly Test Ride',
        'schedule': 'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260101T090000',
        'winter_start_time': None,
        'ride_group': 'A',
        'destination': 'Test Destination',
        'distance': 30,
        'meet_point': 'Village Hall',
        'route': 'Test Route',
        'leader': 'leader-123',
        'notes': 'Test notes',
        'ride_limit': 20,
    }
    fields.update(overrides)
    return RepeatingRide(**fields)


def ride_datetime(ride):
    """Parse a generated ride's ride_date."""
    return datetime.fromisoformat(ride['ride_date'].replace('Z', '+00:00'))


class PeriodWindowTests(SimpleTestCase):
    """Test the generation window."""

    def test_window_runs_to_first_of_next_month(self):
        """Test window starts at the reference date and ends at next month."""
        start, end = get_period_window('2026-03-15T10:30:00.000Z')

        self.assertEqual(start, datetime(2026, 3, 15, 10, 30, tzinfo=UTC))
        self.assertEqual(end, datetime(2026, 4, 1, tzinfo=UTC))

    def test_window_in_december_ends_in_next_year(self):
        """Test December rolls over to January 1st."""
        _, end = get_period_window(datetime(2026, 12, 5, 9, 0, tzinfo=UTC))
        self.assertEqual(end, datetime(2027, 1, 1, tzinfo=UTC))

    def test_naive_reference_date_is_utc(self):
        """Test a naive datetime is read as UTC."""
        start, end = get_period_window(datetime(2026, 2, 10))

        self.assertEqual(start, datetime(2026, 2, 10, tzinfo=UTC))
        self.assertEqual(end, datetime(2026, 3, 1, tzinfo=UTC))

    def test_default_window_starts_now(self):
        """Test the window defaults to now until next month."""
        before = datetime.now(UTC)
        start, end = get_period_window()

        self.assertGreaterEqual(start, before)
        self.assertEqual(end.day, 1)
        self.assertEqual((end.hour, end.minute, end.second), (0, 0, 0))
        self.assertGreater(end, start)
        self.assertEqual(get_next_month_start('2026-10-19T12:00:00Z'), datetime(2026, 11, 1, tzinfo=UTC))


class WinterTimeTests(SimpleTestCase):
    """Test winter classification and start time adjustment."""

    def test_winter_months(self):
        """Test November to February are winter, other months are not."""
        winter = {
            month for month in range(1, 13)
            if is_winter(datetime(2026, month, 10, 9, 0, tzinfo=UTC))
        }
        self.assertEqual(winter, {11, 12, 1, 2})

    def test_winter_time_replaces_hour_and_minute(self):
        """Test HH:MM replaces hour and minute but not the date."""
        adjusted = apply_winter_time(datetime(2026, 12, 5, 9, 0, 15, tzinfo=UTC), '08:30')
        self.assertEqual(adjusted, datetime(2026, 12, 5, 8, 30, 15, tzinfo=UTC))

    def test_hours_only_keeps_minutes(self):
        """Test "08" changes only the hour."""
        adjusted = apply_winter_time(datetime(2026, 12, 5, 9, 45, tzinfo=UTC), '08')
        self.assertEqual(adjusted, datetime(2026, 12, 5, 8, 45, tzinfo=UTC))

    def test_summer_instant_unchanged(self):
        """Test summer instants keep their time."""
        instant = datetime(2026, 4, 4, 9, 0, tzinfo=UTC)
        self.assertEqual(apply_winter_time(instant, '08:30'), instant)

    def test_missing_or_malformed_winter_time_ignored(self):
        """Test None, non-strings and malformed values leave the instant alone."""
        instant = datetime(2026, 1, 3, 9, 0, tzinfo=UTC)

        for value in [None, 830, '', 'abc', '25:00', '08:xx']:
            with self.subTest(value=value):
                self.assertEqual(apply_winter_time(instant, value), instant)


class GenerateRideTests(SimpleTestCase):
    """Test building a single ride from a template."""

    def test_copies_fields(self):
        """Test all set fields are copied and schedule_id points at the template."""
        ride = generate_ride(make_template(), datetime(2026, 3, 7, 9, 0, tzinfo=UTC))

        self.assertEqual(ride, {
            'name': 'Weekly Test Ride',
            'ride_date': '2026-03-07T09:00:00.000Z',
            'ride_group': 'A',
            'destination': 'Test Destination',
            'distance': 30,
            'meet_point': 'Village Hall',
            'route': 'Test Route',
            'leader': 'leader-123',
            'notes': 'Test notes',
            'ride_limit': 20,
            'schedule_id': TEMPLATE_ID,
        })

    def test_omits_none_and_empty_fields(self):
        """Test None and empty string fields are left out entirely."""
        template = make_template(destination=None, route='', notes=None, leader='')
        ride = generate_ride(template, datetime(2026, 3, 7, 9, 0, tzinfo=UTC))

        for field_name in ['destination', 'route', 'notes', 'leader']:
            self.assertNotIn(field_name, ride)
        self.assertEqual(ride['meet_point'], 'Village Hall')

    def test_keeps_zero_values(self):
        """Test zero and negative numbers are values, not empty."""
        template = make_template(distance=0, ride_limit=-1)
        ride = generate_ride(template, datetime(2026, 3, 7, 9, 0, tzinfo=UTC))

        self.assertEqual(ride['distance'], 0)
        self.assertEqual(ride['ride_limit'], -1)

    def test_template_without_id(self):
        """Test no schedule_id is set for a template without an id."""
        template = make_template()
        template.id = None
        ride = generate_ride(template, datetime(2026, 3, 7, 9, 0, tzinfo=UTC))

        self.assertNotIn('schedule_id', ride)
        self.assertEqual(ride['name'], 'Weekly Test Ride')


class MakeRidesInPeriodTests(SimpleTestCase):
    """Test expanding a template into rides for a period."""

    def test_weekly_schedule(self):
        """Test March 2026 has 4 Saturdays at 09:00."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000')
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual(result.id, TEMPLATE_ID)
        self.assertEqual(result.schedule, template.schedule)
        self.assertEqual(
            [ride['ride_date'] for ride in result.rides],
            [
                '2026-03-07T09:00:00.000Z',
                '2026-03-14T09:00:00.000Z',
                '2026-03-21T09:00:00.000Z',
                '2026-03-28T09:00:00.000Z',
            ]
        )
        self.assertEqual(result.last_occurrence, datetime(2026, 3, 28, 9, 0, tzinfo=UTC))

    def test_multiple_days_per_week(self):
        """Test MO,WE,FR gives 5 + 4 + 4 rides in March 2026, in date order."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=MO,WE,FR;DTSTART=20260301T090000')
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual(len(result.rides), 13)
        dates = [ride['ride_date'] for ride in result.rides]
        self.assertEqual(dates, sorted(dates))

    def test_rides_per_weekday_match_calendar(self):
        """Test each weekday yields as many rides as it occurs in the month."""
        for index, day in enumerate(['MO', 'TU', 'WE', 'TH', 'FR', 'SA', 'SU']):
            expected = sum(1 for week in calendar.monthcalendar(2026, 3) if week[index])
            template = make_template(schedule=f'FREQ=WEEKLY;BYDAY={day};DTSTART=20260301T090000')

            with self.subTest(day=day):
                self.assertEqual(len(make_rides_in_period(template, MARCH_2026).rides), expected)

    def test_starting_mid_month(self):
        """Test starting March 15 leaves 2 Saturdays."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260315T090000')
        result = make_rides_in_period(template, '2026-03-15T00:00:00.000Z')

        self.assertEqual(len(result.rides), 2)

    def test_until_truncates_series(self):
        """Test UNTIL keeps only March 7 and 14."""
        template = make_template(
            schedule='FREQ=WEEKLY;BYDAY=SA;UNTIL=20260315T090000;DTSTART=20260301T090000'
        )
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual(
            [ride['ride_date'][:10] for ride in result.rides],
            ['2026-03-07', '2026-03-14']
        )

    def test_until_in_the_past_gives_no_rides(self):
        """Test a finished series gives an empty ride list, not an error."""
        template = make_template(
            schedule='FREQ=WEEKLY;BYDAY=SA;UNTIL=20260215T090000;DTSTART=20260101T090000'
        )
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual(result.rides, [])
        self.assertIsNone(result.last_occurrence)

    def test_daily_schedule(self):
        """Test a daily rule gives 31 rides in March."""
        template = make_template(schedule='FREQ=DAILY;DTSTART=20260301T090000')
        self.assertEqual(len(make_rides_in_period(template, MARCH_2026).rides), 31)

    def test_five_occurrences_of_weekday(self):
        """Test March 2026 has 5 Mondays."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=MO;DTSTART=20260301T090000')
        self.assertEqual(len(make_rides_in_period(template, MARCH_2026).rides), 5)

    def test_february_leap_year(self):
        """Test February 2024 has 29 daily rides."""
        template = make_template(schedule='FREQ=DAILY;DTSTART=20240201T090000')
        result = make_rides_in_period(template, '2024-02-01T00:00:00.000Z')

        self.assertEqual(len(result.rides), 29)

    def test_february_non_leap_year(self):
        """Test February 2026 has 28 daily rides."""
        template = make_template(schedule='FREQ=DAILY;DTSTART=20260201T090000')
        result = make_rides_in_period(template, '2026-02-01T00:00:00.000Z')

        self.assertEqual(len(result.rides), 28)

    def test_monthly_first_saturday(self):
        """Test 1SA gives only the first Saturday."""
        template = make_template(schedule='FREQ=MONTHLY;BYDAY=1SA;DTSTART=20260301T090000')
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual([ride['ride_date'] for ride in result.rides], ['2026-03-07T09:00:00.000Z'])

    def test_rfc_lines_schedule(self):
        """Test DTSTART on its own line with an RRULE line."""
        template = make_template(schedule='DTSTART:20260301T090000Z\nRRULE:FREQ=WEEKLY;BYDAY=SA')
        self.assertEqual(len(make_rides_in_period(template, MARCH_2026).rides), 4)

    def test_end_of_window_excluded(self):
        """Test an occurrence exactly at the end of the window is not included."""
        template = make_template(schedule='FREQ=MONTHLY;BYMONTHDAY=1;DTSTART=20260101T000000')
        result = make_rides_in_period(template, MARCH_2026)

        self.assertEqual([ride['ride_date'] for ride in result.rides], ['2026-03-01T00:00:00.000Z'])

    def test_same_input_same_output(self):
        """Test expansion has no hidden state."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000')

        self.assertEqual(
            make_rides_in_period(template, MARCH_2026),
            make_rides_in_period(template, MARCH_2026)
        )

    def test_invalid_schedule_raises(self):
        """Test malformed rules propagate as InvalidSchedule."""
        for schedule in ['not a rule', 'FREQ=WEEKLY;BYDAY=SA', 'FREQ=SOMETIMES;DTSTART=20260301T090000', '']:
            with self.subTest(schedule=schedule):
                with self.assertRaises(InvalidSchedule):
                    make_rides_in_period(make_template(schedule=schedule), MARCH_2026)

    def test_invalid_schedule_is_value_error(self):
        """Test InvalidSchedule can be handled as a ValueError."""
        with self.assertRaises(ValueError):
            parse_schedule('FREQ=WEEKLY;BYDAY=XX;DTSTART=20260301T090000')


class WinterRidesTests(SimpleTestCase):
    """Test winter start time applied during expansion."""

    def first_ride_time(self, dtstart, reference_date, winter_start_time):
        template = make_template(
            schedule=f'FREQ=WEEKLY;BYDAY=SA;DTSTART={dtstart}',
            winter_start_time=winter_start_time
        )
        result = make_rides_in_period(template, reference_date)
        self.assertTrue(result.rides)
        first = ride_datetime(result.rides[0])
        return first.hour, first.minute

    def test_applies_in_winter_months(self):
        """Test November to February rides use the winter start time."""
        cases = [
            ('20261101T090000', '2026-11-01T00:00:00.000Z'),
            ('20261201T090000', '2026-12-01T00:00:00.000Z'),
            ('20260101T090000', '2026-01-01T00:00:00.000Z'),
            ('20260201T090000', '2026-02-01T00:00:00.000Z'),
        ]
        for dtstart, reference_date in cases:
            with self.subTest(month=reference_date[:7]):
                self.assertEqual(self.first_ride_time(dtstart, reference_date, '08:30'), (8, 30))

    def test_not_applied_in_summer_months(self):
        """Test March to October rides keep the scheduled time."""
        cases = [
            ('20260301T090000', '2026-03-01T00:00:00.000Z'),
            ('20260401T090000', '2026-04-01T00:00:00.000Z'),
            ('20260701T090000', '2026-07-01T00:00:00.000Z'),
            ('20260901T090000', '2026-09-01T00:00:00.000Z'),
            ('20261001T090000', '2026-10-01T00:00:00.000Z'),
        ]
        for dtstart, reference_date in cases:
            with self.subTest(month=reference_date[:7]):
                self.assertEqual(self.first_ride_time(dtstart, reference_date, '08:30'), (9, 0))

    def test_null_winter_time(self):
        """Test a template without a winter time keeps the scheduled time."""
        self.assertEqual(
            self.first_ride_time('20261201T090000', '2026-12-01T00:00:00.000Z', None),
            (9, 0)
        )

    def test_winter_time_does_not_change_date(self):
        """Test every December ride keeps its date."""
        template = make_template(
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20261201T090000',
            winter_start_time='08:00'
        )
        result = make_rides_in_period(template, '2026-12-01T00:00:00.000Z')

        self.assertEqual(
            [ride['ride_date'] for ride in result.rides],
            [
                '2026-12-05T08:00:00.000Z',
                '2026-12-12T08:00:00.000Z',
                '2026-12-19T08:00:00.000Z',
                '2026-12-26T08:00:00.000Z',
            ]
        )
        self.assertEqual(result.last_occurrence, datetime(2026, 12, 26, 9, 0, tzinfo=UTC))


class UpdateScheduleStartDateTests(SimpleTestCase):
    """Test moving a schedule's DTSTART forward."""

    def test_adds_one_day(self):
        """Test DTSTART becomes the day after the given date."""
        schedule = 'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        result = update_schedule_start_date(schedule, '2026-03-15T00:00:00.000Z')

        self.assertIn('DTSTART:20260316', result)
        self.assertIn('FREQ=WEEKLY;BYDAY=SA', result)

    def test_no_start_date_returns_schedule(self):
        """Test a missing start date leaves the schedule untouched."""
        schedule = 'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260101T090000'

        self.assertIs(update_schedule_start_date(schedule, None), schedule)
        self.assertIs(update_schedule_start_date(schedule, ''), schedule)
        self.assertIs(update_schedule_start_date('garbage'), 'garbage')

    def test_preserves_rule_parts(self):
        """Test FREQ, BYDAY and INTERVAL survive."""
        schedule = 'FREQ=WEEKLY;BYDAY=MO,WE,FR;INTERVAL=1;DTSTART=20260101T090000'
        result = update_schedule_start_date(schedule, '2026-03-01T00:00:00.000Z')

        self.assertIn('FREQ=WEEKLY', result)
        self.assertIn('BYDAY=MO,WE,FR', result)
        self.assertIn('INTERVAL=1', result)
        self.assertIn('DTSTART:20260302', result)
        self.assertNotIn('20260101', result)

    def test_preserves_until(self):
        """Test UNTIL is kept as it was."""
        schedule = 'FREQ=WEEKLY;BYDAY=SA;UNTIL=20261231T090000;DTSTART=20260101T090000'
        result = update_schedule_start_date(schedule, '2026-02-01T00:00:00.000Z')

        self.assertIn('UNTIL=20261231T090000', result)

    def test_preserves_monthly_parts(self):
        """Test ordinal weekdays, BYSETPOS, BYMONTH and BYMONTHDAY survive."""
        cases = [
            ('FREQ=MONTHLY;BYDAY=1SA;DTSTART=20260301T090000', ['FREQ=MONTHLY', 'BYDAY=1SA']),
            ('FREQ=MONTHLY;BYDAY=-1FR;DTSTART=20260301T090000', ['BYDAY=-1FR']),
            ('FREQ=MONTHLY;BYDAY=SA,SU;BYSETPOS=1;DTSTART=20260301T090000', ['BYDAY=SA,SU', 'BYSETPOS=1']),
            ('FREQ=YEARLY;BYMONTH=6;BYMONTHDAY=21;DTSTART=20260101T090000', ['BYMONTH=6', 'BYMONTHDAY=21']),
            ('FREQ=WEEKLY;INTERVAL=2;BYDAY=SU;DTSTART=20260301T090000', ['INTERVAL=2', 'BYDAY=SU']),
        ]
        for schedule, expected_parts in cases:
            result = update_schedule_start_date(schedule, '2026-03-07T09:00:00.000Z')
            for part in expected_parts:
                with self.subTest(schedule=schedule, part=part):
                    self.assertIn(part, result)

    def test_keeps_weekday_of_rule_without_byday(self):
        """Test a weekly rule without BYDAY stays on its original weekday."""
        schedule = 'FREQ=WEEKLY;DTSTART=20260307T090000'
        updated = update_schedule_start_date(schedule, '2026-03-28T09:00:00.000Z')

        self.assertIn('DTSTART:20260329T090000', updated)
        self.assertIn('BYDAY=SA', updated)

        result = make_rides_in_period(make_template(schedule=updated), '2026-04-01T00:00:00.000Z')
        self.assertEqual(
            [ride['ride_date'][:10] for ride in result.rides],
            ['2026-04-04', '2026-04-11', '2026-04-18', '2026-04-25']
        )

    def test_accepts_datetime(self):
        """Test start date may be a datetime."""
        result = update_schedule_start_date(
            'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000',
            datetime(2026, 3, 28, 9, 0, tzinfo=UTC)
        )
        self.assertIn('DTSTART:20260329T090000', result)

    def test_advanced_schedule_does_not_repeat_rides(self):
        """Test rides are not generated again after advancing to the last ride."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000')
        march = make_rides_in_period(template, MARCH_2026)

        template.schedule = update_schedule_start_date(march.schedule, march.last_occurrence)

        self.assertEqual(make_rides_in_period(template, MARCH_2026).rides, [])
        april = make_rides_in_period(template, '2026-04-01T00:00:00.000Z')
        self.assertEqual(
            [ride['ride_date'] for ride in april.rides],
            [
                '2026-04-04T09:00:00.000Z',
                '2026-04-11T09:00:00.000Z',
                '2026-04-18T09:00:00.000Z',
                '2026-04-25T09:00:00.000Z',
            ]
        )

    def test_until_before_new_start_gives_no_rides(self):
        """Test a series ended by UNTIL produces nothing after advancing."""
        schedule = 'FREQ=WEEKLY;BYDAY=SA;UNTIL=20260315T090000;DTSTART=20260301T090000'
        updated = update_schedule_start_date(schedule, '2026-03-14T09:00:00.000Z')

        result = make_rides_in_period(make_template(schedule=updated), '2026-04-01T00:00:00.000Z')
        self.assertEqual(result.rides, [])

    def test_sub_daily_rule_skips_rest_of_day(self):
        """Test the one day offset skips later occurrences on the same day."""
        schedule = 'FREQ=HOURLY;INTERVAL=6;DTSTART=20260301T000000'
        updated = update_schedule_start_date(schedule, '2026-03-01T06:00:00.000Z')

        self.assertIn('DTSTART:20260302T060000', updated)
        result = make_rides_in_period(make_template(schedule=updated), MARCH_2026)
        self.assertEqual(result.rides[0]['ride_date'], '2026-03-02T06:00:00.000Z')

    def test_invalid_schedule_raises(self):
        """Test a malformed schedule fails when a start date is given."""
        with self.assertRaises(InvalidSchedule):
            update_schedule_start_date('FREQ=WEEKLY;BYDAY=SA', '2026-03-01T00:00:00.000Z')

    def test_count_becomes_until(self):
        """Test a finished COUNT series stays finished after advancing."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;COUNT=2;DTSTART=20260301T090000')
        march = make_rides_in_period(template, MARCH_2026)
        self.assertEqual(len(march.rides), 2)

        template.schedule = update_schedule_start_date(march.schedule, march.last_occurrence)

        self.assertNotIn('COUNT', template.schedule)
        self.assertIn('FREQ=WEEKLY;BYDAY=SA;UNTIL=20260314T090000Z', template.schedule)
        self.assertEqual(make_rides_in_period(template, '2026-04-01T00:00:00.000Z').rides, [])

    def test_count_remaining_rides_kept(self):
        """Test the rest of a COUNT series is generated in later months."""
        template = make_template(schedule='FREQ=WEEKLY;BYDAY=SA;COUNT=6;DTSTART=20260301T090000')
        march = make_rides_in_period(template, MARCH_2026)

        template.schedule = update_schedule_start_date(march.schedule, march.last_occurrence)
        april = make_rides_in_period(template, '2026-04-01T00:00:00.000Z')

        self.assertEqual(
            [ride['ride_date'][:10] for ride in april.rides],
            ['2026-04-04', '2026-04-11']
        )

    def test_byday_kept_as_written(self):
        """Test BYDAY keeps its order rather than being sorted."""
        result = update_schedule_start_date(
            'FREQ=WEEKLY;BYDAY=FR,MO;DTSTART=20260301T090000',
            '2026-03-30T09:00:00.000Z'
        )
        self.assertIn('FREQ=WEEKLY;BYDAY=FR,MO', result)

    def test_interval_written_as_entered(self):
        """Test INTERVAL appears only when the schedule had it."""
        without = update_schedule_start_date(
            'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000', '2026-03-28T09:00:00.000Z'
        )
        with_one = update_schedule_start_date(
            'FREQ=WEEKLY;BYDAY=SA;INTERVAL=1;DTSTART=20260301T090000', '2026-03-28T09:00:00.000Z'
        )

        self.assertNotIn('INTERVAL', without)
        self.assertIn('FREQ=WEEKLY;BYDAY=SA;INTERVAL=1', with_one)

    def test_other_parts_kept(self):
        """Test parts such as WKST survive advancing."""
        result = update_schedule_start_date(
            'FREQ=WEEKLY;INTERVAL=2;BYDAY=SA;WKST=SU;DTSTART=20260301T090000',
            '2026-03-28T09:00:00.000Z'
        )
        self.assertIn('RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=SA;WKST=SU', result)

    def test_until_written_in_utc(self):
        """Test a floating UNTIL is written back with a Z."""
        result = update_schedule_start_date(
            'FREQ=WEEKLY;BYDAY=SA;UNTIL=20261231T090000;DTSTART=20260301T090000',
            '2026-03-28T09:00:00.000Z'
        )
        self.assertIn('UNTIL=20261231T090000Z', result)

    def test_count_with_until_rejected(self):
        """Test COUNT and UNTIL together, or a COUNT below one, are invalid."""
        for schedule in [
            'FREQ=WEEKLY;COUNT=2;UNTIL=20261231T090000;DTSTART=20260301T090000',
            'FREQ=WEEKLY;COUNT=0;DTSTART=20260301T090000',
        ]:
            with self.subTest(schedule=schedule):
                with self.assertRaises(InvalidSchedule):
                    parse_schedule(schedule)


class TimeZoneScheduleTests(SimpleTestCase):
    """Test schedules whose DTSTART carries a TZID."""

    LONDON = 'DTSTART;TZID=Europe/London:20260601T090000\nRRULE:FREQ=WEEKLY;BYDAY=SA'

    def test_summer_rides_in_local_time(self):
        """Test 09:00 London in June is 08:00 UTC."""
        result = make_rides_in_period(make_template(schedule=self.LONDON), '2026-06-01T00:00:00.000Z')

        self.assertEqual(result.rides[0]['ride_date'], '2026-06-06T08:00:00.000Z')
        self.assertEqual(len(result.rides), 4)
        self.assertEqual(result.last_occurrence, datetime(2026, 6, 27, 8, 0, tzinfo=UTC))

    def test_winter_rides_in_local_time(self):
        """Test 09:00 London in January is 09:00 UTC."""
        result = make_rides_in_period(make_template(schedule=self.LONDON), '2027-01-01T00:00:00.000Z')
        self.assertEqual(result.rides[0]['ride_date'], '2027-01-02T09:00:00.000Z')

    def test_winter_start_time_is_local(self):
        """Test the winter start time is read in the schedule's zone."""
        template = make_template(
            schedule='DTSTART;TZID=Europe/Berlin:20260601T090000\nRRULE:FREQ=WEEKLY;BYDAY=SA',
            winter_start_time='08:30'
        )
        result = make_rides_in_period(template, '2026-12-01T00:00:00.000Z')

        self.assertEqual(result.rides[0]['ride_date'], '2026-12-05T07:30:00.000Z')

    def test_advancing_keeps_tzid(self):
        """Test the advanced schedule stays in its zone and continues the series."""
        template = make_template(schedule=self.LONDON)
        june = make_rides_in_period(template, '2026-06-01T00:00:00.000Z')

        template.schedule = update_schedule_start_date(june.schedule, june.last_occurrence)

        self.assertEqual(
            template.schedule,
            'DTSTART;TZID=Europe/London:20260628T090000\nRRULE:FREQ=WEEKLY;BYDAY=SA'
        )
        july = make_rides_in_period(template, '2026-07-01T00:00:00.000Z')
        self.assertEqual(july.rides[0]['ride_date'], '2026-07-04T08:00:00.000Z')

    def test_until_must_be_utc(self):
        """Test UNTIL with a TZID is accepted in UTC and rejected as local time."""
        parse_schedule(self.LONDON + ';UNTIL=20261231T000000Z')

        with self.assertRaises(InvalidSchedule):
            parse_schedule(self.LONDON + ';UNTIL=20261231T000000')

    def test_unknown_time_zone(self):
        """Test an unknown TZID is an invalid schedule."""
        with self.assertRaises(InvalidSchedule):
            parse_schedule('DTSTART;TZID=Mars/Olympus:20260601T090000\nRRULE:FREQ=WEEKLY')


class RepeatingRideModelTests(TestCase):
    """Test RepeatingRide model and validation."""

    def test_create_repeating_ride(self):
        """Test creating a repeating ride with defaults."""
        repeating_ride = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        )

        self.assertEqual(repeating_ride.ride_limit, -1)
        self.assertIsNone(repeating_ride.winter_start_time)
        self.assertIsInstance(repeating_ride.id, uuid.UUID)

    def test_invalid_schedule_rejected(self):
        """Test a schedule that does not parse is rejected on save."""
        with self.assertRaises(ValidationError) as context:
            RepeatingRide.objects.create(name='Broken', schedule='FREQ=WEEKLY;BYDAY=SA')

        self.assertIn('schedule', context.exception.message_dict)

    def test_invalid_winter_start_time_rejected(self):
        """Test the winter start time must look like HH or HH:MM."""
        with self.assertRaises(ValidationError) as context:
            RepeatingRide.objects.create(
                name='Winter',
                schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000',
                winter_start_time='half eight'
            )

        self.assertIn('winter_start_time', context.exception.message_dict)

    def test_ordered_by_name_then_distance(self):
        """Test by_name orders by name, longest first."""
        schedule = 'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        RepeatingRide.objects.create(name='B ride', schedule=schedule, distance=50)
        RepeatingRide.objects.create(name='A ride', schedule=schedule, distance=30)
        RepeatingRide.objects.create(name='A ride', schedule=schedule, distance=60)

        self.assertEqual(
            [(ride.name, ride.distance) for ride in RepeatingRide.objects.by_name()],
            [('A ride', 60), ('A ride', 30), ('B ride', 50)]
        )


class RideModelTests(TestCase):
    """Test Ride model and manager."""

    def setUp(self):
        """Create a repeating ride and rides."""
        self.repeating_ride = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        )
        now = timezone.now()
        self.past_ride = Ride.objects.create(
            name='Past', ride_date=now - timedelta(days=7), schedule=self.repeating_ride
        )
        self.future_ride = Ride.objects.create(
            name='Future', ride_date=now + timedelta(days=7), schedule=self.repeating_ride
        )
        self.deleted_ride = Ride.objects.create(
            name='Deleted', ride_date=now + timedelta(days=8), deleted=True
        )

    def test_defaults(self):
        """Test ride defaults and generated flag."""
        self.assertEqual(self.future_ride.ride_limit, -1)
        self.assertFalse(self.future_ride.cancelled)
        self.assertTrue(self.future_ride.is_generated)
        self.assertFalse(self.deleted_ride.is_generated)

    def test_upcoming_excludes_past_and_deleted(self):
        """Test upcoming only returns future rides that are not deleted."""
        self.assertEqual(list(Ride.objects.upcoming()), [self.future_ride])

    def test_for_schedule(self):
        """Test rides generated from a repeating ride."""
        self.assertEqual(
            set(Ride.objects.for_schedule(self.repeating_ride)),
            {self.past_ride, self.future_ride}
        )

    def test_rides_outlive_repeating_ride(self):
        """Test deleting the repeating ride keeps its rides."""
        self.repeating_ride.delete()
        self.future_ride.refresh_from_db()

        self.assertIsNone(self.future_ride.schedule_id)
        self.assertEqual(Ride.objects.count(), 3)


class GenerateRidesServiceTests(TestCase):
    """Test generating and saving rides from repeating rides."""

    def setUp(self):
        """Create repeating rides."""
        self.saturday = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000',
            ride_group='B',
            distance=50,
            meet_point='Village Hall'
        )
        self.wednesday = RepeatingRide.objects.create(
            name='Wednesday Evening',
            schedule='FREQ=WEEKLY;BYDAY=WE;DTSTART=20260301T180000',
            ride_limit=12
        )

    def test_generate_all(self):
        """Test rides are created for every repeating ride."""
        report = generate_rides(date=MARCH_2026)

        self.assertTrue(report.success)
        self.assertEqual(report.generate_from_date, MARCH_2026)
        self.assertEqual(Ride.objects.for_schedule(self.saturday).count(), 4)
        self.assertEqual(Ride.objects.for_schedule(self.wednesday).count(), 4)
        self.assertEqual(
            {result.schedule_id: result.count for result in report.results},
            {str(self.saturday.id): 4, str(self.wednesday.id): 4}
        )

    def test_ride_fields(self):
        """Test generated rides carry the template's fields and defaults."""
        generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)
        ride = Ride.objects.for_schedule(self.saturday).first()

        self.assertEqual(ride.name, 'Saturday Social')
        self.assertEqual(ride.ride_date, datetime(2026, 3, 7, 9, 0, tzinfo=UTC))
        self.assertEqual(ride.ride_group, 'B')
        self.assertEqual(ride.distance, 50)
        self.assertEqual(ride.meet_point, 'Village Hall')
        self.assertIsNone(ride.destination)
        self.assertEqual(ride.ride_limit, -1)

        generate_rides(schedule_id=str(self.wednesday.id), date=MARCH_2026)
        self.assertEqual(Ride.objects.for_schedule(self.wednesday).first().ride_limit, 12)

    def test_schedule_advanced_past_last_ride(self):
        """Test the template's DTSTART moves to the day after its last ride."""
        generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)
        self.saturday.refresh_from_db()

        self.assertIn('DTSTART:20260329T090000Z', self.saturday.schedule)
        self.assertIn('FREQ=WEEKLY;BYDAY=SA', self.saturday.schedule)

    def test_generating_twice_creates_no_duplicates(self):
        """Test a second run for the same month creates nothing."""
        generate_rides(date=MARCH_2026)
        report = generate_rides(date=MARCH_2026)

        self.assertTrue(report.success)
        self.assertEqual(report.ride_count, 0)
        self.assertEqual(Ride.objects.count(), 8)

    def test_consecutive_months(self):
        """Test generating March then April continues the series."""
        generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)
        generate_rides(schedule_id=str(self.saturday.id), date='2026-04-01T00:00:00.000Z')

        dates = [
            ride.ride_date.date().isoformat()
            for ride in Ride.objects.for_schedule(self.saturday)
        ]
        self.assertEqual(dates, [
            '2026-03-07', '2026-03-14', '2026-03-21', '2026-03-28',
            '2026-04-04', '2026-04-11', '2026-04-18', '2026-04-25',
        ])

    def test_winter_time_not_carried_into_schedule(self):
        """Test the schedule keeps its own time when winter rides are earlier."""
        winter = create_repeating_ride(RepeatingRideData(
            name='Winter Saturday',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20261201T090000',
            winter_start_time='08:30'
        ))

        generate_rides(schedule_id=str(winter.id), date='2026-12-01T00:00:00.000Z')
        winter.refresh_from_db()

        first = Ride.objects.for_schedule(winter).first()
        self.assertEqual((first.ride_date.hour, first.ride_date.minute), (8, 30))
        self.assertIn('DTSTART:20261227T090000Z', winter.schedule)

    def test_unknown_schedule_id(self):
        """Test an unknown id generates nothing and succeeds."""
        report = generate_rides(schedule_id=str(uuid.uuid4()), date=MARCH_2026)

        self.assertTrue(report.success)
        self.assertEqual(report.results, [])
        self.assertEqual(Ride.objects.count(), 0)

    def test_invalid_schedule_does_not_stop_others(self):
        """Test one broken template is reported while the others generate."""
        broken = RepeatingRide(name='Broken', schedule='FREQ=WEEKLY;BYDAY=SA')
        RepeatingRide.objects.bulk_create([broken])

        report = generate_rides(date=MARCH_2026)

        self.assertFalse(report.success)
        self.assertEqual(report.error_count, 1)
        errors = [result for result in report.results if result.error]
        self.assertEqual(errors[0].schedule_id, str(broken.id))
        self.assertEqual(errors[0].error, GENERATE_ERROR_MESSAGE)
        self.assertEqual(Ride.objects.count(), 8)

    def test_failed_insert_leaves_schedule_unchanged(self):
        """Test the schedule is not advanced when rides cannot be saved."""
        original_schedule = self.saturday.schedule

        with mock.patch.object(Ride.objects, 'bulk_create', side_effect=DatabaseError('insert failed')):
            report = generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)

        self.saturday.refresh_from_db()
        self.assertFalse(report.success)
        self.assertEqual(report.results[0].error, GENERATE_ERROR_MESSAGE)
        self.assertEqual(self.saturday.schedule, original_schedule)
        self.assertEqual(Ride.objects.count(), 0)

    def test_failed_schedule_update_rolls_back_rides(self):
        """Test rides are not kept when the schedule cannot be saved."""
        with mock.patch.object(RepeatingRide, 'save', side_effect=DatabaseError('update failed')):
            report = generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)

        self.assertFalse(report.success)
        self.assertEqual(Ride.objects.count(), 0)

    def test_empty_ride_set(self):
        """Test an empty ride set writes nothing."""
        original_schedule = self.saturday.schedule
        result = create_rides_from_set(
            RideSet(id=self.saturday.id, schedule=original_schedule, rides=[])
        )

        self.saturday.refresh_from_db()
        self.assertEqual(result.as_dict(), {'schedule_id': str(self.saturday.id), 'count': 0})
        self.assertEqual(self.saturday.schedule, original_schedule)

    def test_default_date_is_next_month(self):
        """Test generation defaults to the first of next month."""
        report = generate_rides()
        expected = get_next_month_start()

        self.assertEqual(report.generate_from_date[:10], expected.date().isoformat())

    def test_report_as_dict(self):
        """Test the report serializes like the API response."""
        report = generate_rides(schedule_id=str(self.saturday.id), date=MARCH_2026)

        self.assertEqual(report.as_dict(), {
            'success': True,
            'generate_from_date': MARCH_2026,
            'results': [{'schedule_id': str(self.saturday.id), 'count': 4}],
        })


class RideServiceTests(TestCase):
    """Test ride service operations."""

    def setUp(self):
        """Create a ride."""
        self.ride = Ride.objects.create(
            name='Saturday Social',
            ride_date=datetime(2026, 3, 7, 9, 0, tzinfo=UTC)
        )

    def test_cancel_ride(self):
        """Test cancelling a ride."""
        cancel_ride(self.ride)
        self.ride.refresh_from_db()

        self.assertTrue(self.ride.cancelled)

    def test_cancel_cancelled_ride(self):
        """Test a ride cannot be cancelled twice."""
        cancel_ride(self.ride)

        with self.assertRaises(ValueError):
            cancel_ride(self.ride)

    def test_rides_in_range(self):
        """Test range queries and their validation."""
        start = datetime(2026, 3, 1, tzinfo=UTC)
        end = datetime(2026, 3, 31, tzinfo=UTC)

        self.assertEqual(get_rides_in_range(start, end), [self.ride])

        with self.assertRaises(ValueError):
            get_rides_in_range(end, start)

        with self.assertRaises(ValueError):
            get_rides_in_range(start, None)


class RepeatingRideAPITests(APITestCase):
    """Test repeating ride API endpoints."""

    def setUp(self):
        """Set up test client and users."""
        self.client = APIClient()
        User = get_user_model()
        self.admin = User.objects.create_user('admin', password='pass', is_staff=True)
        self.member = User.objects.create_user('member', password='pass')
        self.repeating_ride = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        )

    def test_requires_authentication(self):
        """Test anonymous requests are rejected."""
        response = self.client.get('/api/repeating-rides/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_requires_admin(self):
        """Test non-admin users are forbidden."""
        self.client.force_authenticate(self.member)

        response = self.client.get('/api/repeating-rides/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_repeating_rides(self):
        """Test listing repeating rides."""
        self.client.force_authenticate(self.admin)

        response = self.client.get('/api/repeating-rides/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['repeating_rides']), 1)
        self.assertEqual(response.data['repeating_rides'][0]['name'], 'Saturday Social')

    def test_create_repeating_ride(self):
        """Test creating a repeating ride."""
        self.client.force_authenticate(self.admin)
        data = {
            'name': 'Sunday Long Ride',
            'schedule': 'FREQ=WEEKLY;BYDAY=SU;DTSTART=20260301T083000',
            'winter_start_time': '09:00',
            'distance': 100,
        }

        response = self.client.post('/api/repeating-rides/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])

        created = RepeatingRide.objects.get(pk=response.data['id'])
        self.assertEqual(created.distance, 100)
        self.assertEqual(created.ride_limit, -1)
        self.assertEqual(created.winter_start_time, '09:00')

    def test_create_validation(self):
        """Test invalid input is rejected."""
        self.client.force_authenticate(self.admin)
        cases = [
            {'name': 'No', 'schedule': 'FREQ=WEEKLY;BYDAY=SU;DTSTART=20260301T083000'},
            {'name': 'Broken schedule', 'schedule': 'FREQ=WEEKLY;BYDAY=SU'},
            {'name': 'Bad winter time', 'schedule': 'FREQ=WEEKLY;BYDAY=SU;DTSTART=20260301T083000',
             'winter_start_time': 'early'},
        ]
        for data in cases:
            with self.subTest(data=data):
                response = self.client.post('/api/repeating-rides/', data, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_retrieve_repeating_ride(self):
        """Test retrieving a repeating ride and a missing one."""
        self.client.force_authenticate(self.admin)

        response = self.client.get(f'/api/repeating-rides/{self.repeating_ride.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['repeating_ride']['schedule'], self.repeating_ride.schedule)

        response = self.client.get(f'/api/repeating-rides/{uuid.uuid4()}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_repeating_ride(self):
        """Test replacing a repeating ride."""
        self.client.force_authenticate(self.admin)
        data = {
            'name': 'Saturday Social (new)',
            'schedule': 'FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T100000',
            'ride_limit': 15,
        }

        response = self.client.put(f'/api/repeating-rides/{self.repeating_ride.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.repeating_ride.refresh_from_db()
        self.assertEqual(self.repeating_ride.name, 'Saturday Social (new)')
        self.assertEqual(self.repeating_ride.ride_limit, 15)

    def test_delete_repeating_ride_keeps_rides(self):
        """Test deleting a repeating ride leaves generated rides in place."""
        generate_rides(schedule_id=str(self.repeating_ride.id), date=MARCH_2026)
        self.client.force_authenticate(self.admin)

        response = self.client.delete(f'/api/repeating-rides/{self.repeating_ride.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(RepeatingRide.objects.exists())
        self.assertEqual(Ride.objects.filter(schedule__isnull=True).count(), 4)


@override_settings(RIDES_API_KEY='cron-secret')
class GenerateAPITests(APITestCase):
    """Test the generate endpoint."""

    def setUp(self):
        """Set up test client, users and a repeating ride."""
        self.client = APIClient()
        User = get_user_model()
        self.admin = User.objects.create_user('admin', password='pass', is_staff=True)
        self.member = User.objects.create_user('member', password='pass')
        self.repeating_ride = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        )

    def test_generate_with_api_key(self):
        """Test the scheduler's API key is accepted."""
        response = self.client.post(
            '/api/generate/',
            {'date': MARCH_2026},
            format='json',
            HTTP_AUTHORIZATION='Bearer cron-secret'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['generate_from_date'], MARCH_2026)
        self.assertEqual(
            response.data['results'],
            [{'schedule_id': str(self.repeating_ride.id), 'count': 4}]
        )
        self.assertEqual(Ride.objects.count(), 4)

    def test_generate_with_wrong_api_key(self):
        """Test a wrong key is rejected."""
        response = self.client.post(
            '/api/generate/', {}, format='json', HTTP_AUTHORIZATION='Bearer guess'
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    @override_settings(RIDES_API_KEY='')
    def test_empty_api_key_disabled(self):
        """Test an unset API key never matches."""
        response = self.client.post(
            '/api/generate/', {}, format='json', HTTP_AUTHORIZATION='Bearer '
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_generate_as_admin_for_one_template(self):
        """Test an admin can generate for a single repeating ride."""
        other = RepeatingRide.objects.create(
            name='Wednesday Evening',
            schedule='FREQ=WEEKLY;BYDAY=WE;DTSTART=20260301T180000'
        )
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            '/api/generate/',
            {'schedule_id': str(other.id), 'date': MARCH_2026},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Ride.objects.for_schedule(other).count(), 4)
        self.assertEqual(Ride.objects.for_schedule(self.repeating_ride).count(), 0)

    def test_generate_forbidden_for_members(self):
        """Test non-admin users cannot generate rides."""
        self.client.force_authenticate(self.member)

        response = self.client.post('/api/generate/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_generate_validation(self):
        """Test malformed ids and dates are rejected."""
        self.client.force_authenticate(self.admin)

        response = self.client.post('/api/generate/', {'schedule_id': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/generate/', {'date': 'tomorrow'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class RideAPITests(APITestCase):
    """Test ride API endpoints."""

    def setUp(self):
        """Set up test client and rides."""
        self.client = APIClient()
        User = get_user_model()
        self.admin = User.objects.create_user('admin', password='pass', is_staff=True)
        now = timezone.now()
        self.upcoming = Ride.objects.create(name='Upcoming', ride_date=now + timedelta(days=3))
        self.march = Ride.objects.create(
            name='March', ride_date=datetime(2020, 3, 7, 9, 0, tzinfo=UTC)
        )
        Ride.objects.create(
            name='Deleted', ride_date=datetime(2020, 3, 8, 9, 0, tzinfo=UTC), deleted=True
        )

    def test_list_rides_in_range(self):
        """Test listing rides in a range skips deleted rides."""
        response = self.client.get('/api/rides/', {
            'start': '2020-03-01T00:00:00Z',
            'end': '2020-03-31T23:59:59Z'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([ride['name'] for ride in response.data], ['March'])

    def test_list_upcoming_rides(self):
        """Test listing without a range returns upcoming rides."""
        response = self.client.get('/api/rides/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([ride['name'] for ride in response.data], ['Upcoming'])

    def test_list_invalid_range(self):
        """Test a half-open or reversed range is rejected."""
        response = self.client.get('/api/rides/', {'start': '2026-03-01T00:00:00Z'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/rides/', {
            'start': '2026-03-31T00:00:00Z',
            'end': '2026-03-01T00:00:00Z'
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_retrieve_ride(self):
        """Test retrieving a ride."""
        response = self.client.get(f'/api/rides/{self.march.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'March')
        self.assertIsNone(response.data['schedule_id'])
        self.assertFalse(response.data['is_generated'])

    def test_cancel_ride(self):
        """Test an admin cancelling a ride, then cancelling it again."""
        self.client.force_authenticate(self.admin)

        response = self.client.post(f'/api/rides/{self.march.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.march.refresh_from_db()
        self.assertTrue(self.march.cancelled)

        response = self.client.post(f'/api/rides/{self.march.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ManagementCommandTests(TestCase):
    """Test management commands."""

    def test_generate_rides_command(self):
        """Test the generate_rides management command."""
        RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000'
        )

        out = StringIO()
        call_command('generate_rides', '--date=2026-03-01T00:00:00Z', stdout=out)

        output = out.getvalue()
        self.assertIn('Successfully generated 4 new ride(s)', output)
        self.assertEqual(Ride.objects.count(), 4)

    def test_generate_rides_command_reports_failures(self):
        """Test the command fails when a repeating ride cannot be generated."""
        RepeatingRide.objects.bulk_create([
            RepeatingRide(name='Broken', schedule='not a rule')
        ])

        with self.assertRaises(CommandError):
            call_command('generate_rides', '--date=2026-03-01T00:00:00Z', stdout=StringIO())

    def test_generate_rides_command_validates_arguments(self):
        """Test malformed ids and dates are rejected."""
        with self.assertRaises(CommandError):
            call_command('generate_rides', '--date=next week', stdout=StringIO())

        with self.assertRaises(CommandError):
            call_command('generate_rides', '--schedule-id=abc', stdout=StringIO())

    def test_archive_rides_command(self):
        """Test the archive_rides management command."""
        Ride.objects.create(name='Old', ride_date=datetime(2026, 1, 10, 9, 0, tzinfo=UTC))
        Ride.objects.create(name='New', ride_date=datetime(2026, 3, 10, 9, 0, tzinfo=UTC))

        out = StringIO()
        call_command('archive_rides', '--date=2026-02-01', stdout=out)

        self.assertIn('Archived 1 ride(s) and 0 rider(s)', out.getvalue())
        self.assertEqual(list(Ride.objects.values_list('name', flat=True)), ['New'])

    def test_archive_rides_command_validates_date(self):
        """Test a malformed date is rejected."""
        with self.assertRaises(CommandError):
            call_command('archive_rides', '--date=yesterday', stdout=StringIO())


class RiderServiceTests(TestCase):
    """Test joining and leaving rides."""

    def setUp(self):
        """Create users and a ride with a limit of two riders."""
        User = get_user_model()
        self.alice = User.objects.create_user('alice', password='pass')
        self.bob = User.objects.create_user('bob', password='pass')
        self.carol = User.objects.create_user('carol', password='pass')
        self.ride = Ride.objects.create(
            name='Saturday Social',
            ride_date=datetime(2026, 3, 7, 9, 0, tzinfo=UTC),
            ride_limit=2
        )

    def test_join_ride(self):
        """Test joining adds a rider."""
        rider = join_ride(self.ride, self.alice)

        self.assertEqual(rider.user, self.alice)
        self.assertEqual(list(self.ride.riders.values_list('user__username', flat=True)), ['alice'])

    def test_join_twice_rejected(self):
        """Test a user cannot join the same ride twice."""
        join_ride(self.ride, self.alice)

        with self.assertRaises(ValueError):
            join_ride(self.ride, self.alice)
        self.assertEqual(self.ride.riders.count(), 1)

    def test_join_full_ride_rejected(self):
        """Test joining fails once ride_limit riders have joined."""
        join_ride(self.ride, self.alice)
        join_ride(self.ride, self.bob)
        self.assertTrue(self.ride.is_full)

        with self.assertRaisesMessage(ValueError, 'Ride is full'):
            join_ride(self.ride, self.carol)
        self.assertEqual(self.ride.riders.count(), 2)

    def test_no_limit(self):
        """Test a negative ride_limit never fills up."""
        self.ride.ride_limit = -1
        self.ride.save()

        for user in [self.alice, self.bob, self.carol]:
            join_ride(self.ride, user)

        self.assertFalse(self.ride.is_full)
        self.assertEqual(self.ride.riders.count(), 3)

    def test_join_cancelled_ride_rejected(self):
        """Test a cancelled ride cannot be joined."""
        cancel_ride(self.ride)

        with self.assertRaises(ValueError):
            join_ride(self.ride, self.alice)

    def test_leave_ride(self):
        """Test leaving frees the place for someone else."""
        join_ride(self.ride, self.alice)
        join_ride(self.ride, self.bob)

        leave_ride(self.ride, self.alice)
        join_ride(self.ride, self.carol)

        self.assertEqual(
            sorted(self.ride.riders.values_list('user__username', flat=True)),
            ['bob', 'carol']
        )

    def test_leave_without_joining(self):
        """Test leaving a ride the user is not on fails."""
        with self.assertRaises(ValueError):
            leave_ride(self.ride, self.alice)

    def test_update_rider_notes(self):
        """Test a rider's notes can be set and cleared."""
        join_ride(self.ride, self.alice)

        rider = update_rider_notes(self.ride, self.alice, 'Bringing a spare tube')
        self.assertEqual(rider.notes, 'Bringing a spare tube')

        rider = update_rider_notes(self.ride, self.alice, None)
        self.assertEqual(rider.notes, '')

        with self.assertRaises(ValueError):
            update_rider_notes(self.ride, self.bob, 'Not on this ride')


class ArchiveServiceTests(TestCase):
    """Test moving past rides to the archive."""

    def setUp(self):
        """Create past and future rides with riders."""
        self.user = get_user_model().objects.create_user('alice', password='pass')
        self.repeating_ride = RepeatingRide.objects.create(
            name='Saturday Social',
            schedule='FREQ=WEEKLY;BYDAY=SA;DTSTART=20260101T090000'
        )
        self.old = Ride.objects.create(
            name='Old',
            ride_date=datetime(2026, 1, 10, 9, 0, tzinfo=UTC),
            schedule=self.repeating_ride,
            distance=40,
            cancelled=True
        )
        self.new = Ride.objects.create(name='New', ride_date=datetime(2026, 3, 10, 9, 0, tzinfo=UTC))
        Rider.objects.create(ride=self.old, user=self.user, notes='Late start')
        Rider.objects.create(ride=self.new, user=self.user)

    def test_archive_moves_past_rides_and_riders(self):
        """Test rides before the run date move with their riders."""
        result = archive_rides(datetime(2026, 2, 1, tzinfo=UTC))

        self.assertEqual((result.moved_rides, result.moved_riders), (1, 1))
        self.assertEqual(list(Ride.objects.all()), [self.new])
        self.assertEqual(Rider.objects.count(), 1)

        archived = ArchivedRide.objects.get(pk=self.old.pk)
        self.assertEqual(archived.name, 'Old')
        self.assertEqual(archived.distance, 40)
        self.assertTrue(archived.cancelled)
        self.assertEqual(archived.schedule_id, self.repeating_ride.id)
        self.assertEqual(archived.created_at, self.old.created_at)

        archived_rider = ArchivedRider.objects.get()
        self.assertEqual(archived_rider.ride, archived)
        self.assertEqual(archived_rider.notes, 'Late start')

    def test_archive_defaults_to_now(self):
        """Test without a run date every past ride is archived."""
        result = archive_rides()

        self.assertEqual(result.moved_rides, 2)
        self.assertEqual(Ride.objects.count(), 0)

    def test_archive_as_dict(self):
        """Test the archive report format."""
        result = archive_rides(datetime(2026, 2, 1, tzinfo=UTC))

        self.assertEqual(result.as_dict(), {
            'success': True,
            'run_date': '2026-02-01T00:00:00+00:00',
            'archive_results': {'moved_rides': 1, 'moved_riders': 1},
        })


class RiderAPITests(APITestCase):
    """Test join, leave and notes endpoints."""

    def setUp(self):
        """Set up users and a ride."""
        self.client = APIClient()
        User = get_user_model()
        self.leader = User.objects.create_user('leader', password='pass', is_staff=True)
        self.member = User.objects.create_user('member', password='pass')
        self.other = User.objects.create_user('other', password='pass')
        self.ride = Ride.objects.create(
            name='Saturday Social',
            ride_date=timezone.now() + timedelta(days=3),
            ride_limit=1
        )

    def test_join_requires_authentication(self):
        """Test anonymous users cannot join."""
        response = self.client.post(f'/api/rides/{self.ride.id}/join/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_join_and_leave(self):
        """Test a member joining and leaving, and the ride showing its riders."""
        self.client.force_authenticate(self.member)

        response = self.client.post(f'/api/rides/{self.ride.id}/join/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'success': True})

        response = self.client.get(f'/api/rides/{self.ride.id}/')
        self.assertEqual(
            [rider['username'] for rider in response.data['riders']],
            ['member']
        )

        response = self.client.post(f'/api/rides/{self.ride.id}/leave/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Rider.objects.exists())

    def test_join_full_ride(self):
        """Test joining a full ride is a bad request."""
        Rider.objects.create(ride=self.ride, user=self.other)
        self.client.force_authenticate(self.member)

        response = self.client.post(f'/api/rides/{self.ride.id}/join/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Ride is full')

    def test_member_cannot_join_others(self):
        """Test members may only join themselves."""
        self.client.force_authenticate(self.member)

        response = self.client.post(
            f'/api/rides/{self.ride.id}/join/', {'user_id': self.other.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_leader_can_add_and_remove_others(self):
        """Test staff can join and remove other riders."""
        self.client.force_authenticate(self.leader)

        response = self.client.post(
            f'/api/rides/{self.ride.id}/join/', {'user_id': self.other.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Rider.objects.filter(ride=self.ride, user=self.other).exists())

        response = self.client.post(
            f'/api/rides/{self.ride.id}/leave/', {'user_id': self.other.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Rider.objects.exists())

    def test_update_notes(self):
        """Test a rider updating their notes."""
        Rider.objects.create(ride=self.ride, user=self.member)
        self.client.force_authenticate(self.member)

        response = self.client.patch(
            f'/api/rides/{self.ride.id}/notes/', {'notes': 'Meeting at the cafe'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Rider.objects.get().notes, 'Meeting at the cafe')

    def test_update_notes_not_joined(self):
        """Test notes cannot be set for a ride the user has not joined."""
        self.client.force_authenticate(self.member)

        response = self.client.patch(
            f'/api/rides/{self.ride.id}/notes/', {'notes': 'Hello'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@override_settings(RIDES_API_KEY='cron-secret')
class ArchiveAPITests(APITestCase):
    """Test the archive endpoint."""

    def setUp(self):
        """Set up a past ride."""
        self.client = APIClient()
        Ride.objects.create(name='Old', ride_date=datetime(2026, 1, 10, 9, 0, tzinfo=UTC))

    def test_archive_with_api_key(self):
        """Test the scheduler archiving with the API key."""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer cron-secret')

        response = self.client.post('/api/archive/', {'date': '2026-02-01T00:00:00Z'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['archive_results'], {'moved_rides': 1, 'moved_riders': 0})
        self.assertEqual(ArchivedRide.objects.count(), 1)

    def test_archive_requires_key_or_admin(self):
        """Test anonymous requests cannot archive."""
        response = self.client.post('/api/archive/', {}, format='json')

        self.assertIn(
            response.status_code,
            [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN]
        )
        self.assertEqual(Ride.objects.count(), 1)
