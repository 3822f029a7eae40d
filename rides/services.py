"""
Service layer for ride business logic.
Services are framework-agnostic and handle all business operations.
"""

import logging
from datetime import datetime
from typing import List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .exceptions import InvalidSchedule
from .models import ArchivedRide, ArchivedRider, RepeatingRide, Ride, Rider
from .recurrence import (
    format_ride_date,
    get_next_month_start,
    make_rides_in_period,
    update_schedule_start_date,
)
from .types import (
    ARCHIVED_RIDE_FIELDS,
    DEFAULT_RIDE_LIMIT,
    ArchiveResult,
    GENERATE_ERROR_MESSAGE,
    GenerateResult,
    GenerationReport,
    RepeatingRideData,
    RideSet,
)


logger = logging.getLogger(__name__)


def generate_rides(
    schedule_id: Optional[str] = None,
    date: Optional[str] = None
) -> GenerationReport:
    """
    Generate rides from repeating ride templates.

    Each template is expanded for the month starting at date, its rides are
    saved and its schedule moved past the last ride. A template that fails
    is reported in the results without stopping the others.

    Args:
        schedule_id: Generate for this repeating ride only (None = all)
        date: ISO-8601 date to generate from (defaults to the first of next month)

    Returns:
        GenerationReport with one GenerateResult per template
    """
    generate_from_date = date or format_ride_date(get_next_month_start())
    report = GenerationReport(generate_from_date=generate_from_date)

    for template in _get_templates(schedule_id):
        try:
            ride_set = make_rides_in_period(template, generate_from_date)
        except InvalidSchedule:
            logger.exception("Could not expand schedule for repeating ride %s", template.id)
            report.results.append(
                GenerateResult(schedule_id=str(template.id), error=GENERATE_ERROR_MESSAGE)
            )
            continue

        report.results.append(create_rides_from_set(ride_set))

    logger.info(
        "Generated %d ride(s) from %d repeating ride(s) starting %s (%d error(s))",
        report.ride_count,
        len(report.results),
        generate_from_date,
        report.error_count,
    )
    return report


def create_rides_from_set(ride_set: RideSet) -> GenerateResult:
    """
    Save the rides of a RideSet and advance its repeating ride's schedule.

    Both writes happen in one transaction: if the rides cannot be saved the
    schedule is left alone, so the next run generates them again.

    Args:
        ride_set: RideSet produced by make_rides_in_period

    Returns:
        GenerateResult with the number of rides created, or an error
    """
    schedule_id = str(ride_set.id) if ride_set.id else None
    if not ride_set.rides:
        return GenerateResult(schedule_id=schedule_id, count=0)

    try:
        with transaction.atomic():
            Ride.objects.bulk_create([_build_ride(ride) for ride in ride_set.rides])

            updated_schedule = update_schedule_start_date(
                ride_set.schedule,
                ride_set.last_occurrence
            )
            if ride_set.id:
                template = RepeatingRide.objects.select_for_update().get(pk=ride_set.id)
                template.schedule = updated_schedule
                template.save(update_fields=['schedule', 'updated_at'])
    except (DatabaseError, RepeatingRide.DoesNotExist, InvalidSchedule):
        logger.exception("Error creating rides for repeating ride %s", schedule_id)
        return GenerateResult(schedule_id=schedule_id, error=GENERATE_ERROR_MESSAGE)

    return GenerateResult(schedule_id=schedule_id, count=len(ride_set.rides))


def _get_templates(schedule_id: Optional[str]) -> List[RepeatingRide]:
    """Get one repeating ride by id, or all of them."""
    if schedule_id:
        return list(RepeatingRide.objects.filter(pk=schedule_id))
    return list(RepeatingRide.objects.all())


def _build_ride(ride: dict) -> Ride:
    """Build an unsaved Ride from a generated ride mapping."""
    values = dict(ride)
    values['ride_date'] = parse_datetime(values['ride_date'])
    return Ride(**values)


@transaction.atomic
def create_repeating_ride(data: RepeatingRideData) -> RepeatingRide:
    """
    Create a repeating ride.

    Args:
        data: RepeatingRideData with the template fields

    Returns:
        Created RepeatingRide instance

    Raises:
        ValidationError: If the schedule or winter start time is invalid
    """
    return RepeatingRide.objects.create(**_repeating_ride_fields(data))


@transaction.atomic
def update_repeating_ride(
    repeating_ride: RepeatingRide,
    data: RepeatingRideData
) -> RepeatingRide:
    """
    Replace the fields of a repeating ride.

    Rides already generated from it are not changed.

    Args:
        repeating_ride: RepeatingRide instance to update
        data: RepeatingRideData with the new field values

    Returns:
        Updated RepeatingRide instance

    Raises:
        ValidationError: If the schedule or winter start time is invalid
    """
    for field_name, value in _repeating_ride_fields(data).items():
        setattr(repeating_ride, field_name, value)
    repeating_ride.save()
    return repeating_ride


@transaction.atomic
def delete_repeating_ride(repeating_ride: RepeatingRide) -> None:
    """Delete a repeating ride; rides generated from it are kept."""
    repeating_ride.delete()


def _repeating_ride_fields(data: RepeatingRideData) -> dict:
    fields = vars(data).copy()
    if fields['ride_limit'] is None:
        fields['ride_limit'] = DEFAULT_RIDE_LIMIT
    return fields


@transaction.atomic
def cancel_ride(ride: Ride) -> Ride:
    """
    Cancel a ride.

    Args:
        ride: Ride instance to cancel

    Returns:
        Updated Ride instance

    Raises:
        ValueError: If the ride is already cancelled
    """
    if ride.cancelled:
        raise ValueError("Ride is already cancelled")

    ride.cancelled = True
    ride.save(update_fields=['cancelled', 'updated_at'])
    return ride


def get_rides_in_range(
    start_datetime: Optional[datetime] = None,
    end_datetime: Optional[datetime] = None
) -> List[Ride]:
    """
    Get rides that have not been deleted within a datetime range.

    Without a range, upcoming rides are returned.

    Args:
        start_datetime: Range start
        end_datetime: Range end

    Returns:
        List of Ride instances ordered by date

    Raises:
        ValueError: If only one bound is given or start_datetime >= end_datetime
    """
    if start_datetime is None and end_datetime is None:
        return list(Ride.objects.upcoming())

    if start_datetime is None or end_datetime is None:
        raise ValueError("Both start and end are required for a range")

    if start_datetime >= end_datetime:
        raise ValueError("Start datetime must be before end datetime")

    return list(Ride.objects.active().in_range(start_datetime, end_datetime))


@transaction.atomic
def join_ride(ride: Ride, user) -> Rider:
    """
    Add a user to a ride's riders.

    The ride row is locked while the rider limit is checked, so two joins
    cannot both take the last place.

    Args:
        ride: Ride instance to join
        user: User joining the ride

    Returns:
        Created Rider instance

    Raises:
        ValueError: If the ride is cancelled, full, or already joined by the user
    """
    ride = Ride.objects.select_for_update().get(pk=ride.pk)

    if ride.cancelled:
        raise ValueError("Ride is cancelled")

    if ride.riders.filter(user=user).exists():
        raise ValueError("User has already joined this ride")

    if ride.is_full:
        raise ValueError("Ride is full")

    rider = Rider.objects.create(ride=ride, user=user)
    logger.info("User %s joined ride %s", user.pk, ride.pk)
    return rider


@transaction.atomic
def leave_ride(ride: Ride, user) -> None:
    """
    Remove a user from a ride's riders.

    Raises:
        ValueError: If the user has not joined the ride
    """
    deleted, _ = Rider.objects.filter(ride=ride, user=user).delete()
    if not deleted:
        raise ValueError("User has not joined this ride")

    logger.info("User %s left ride %s", user.pk, ride.pk)


def update_rider_notes(ride: Ride, user, notes: Optional[str]) -> Rider:
    """
    Set a rider's notes for a ride.

    Raises:
        ValueError: If the user has not joined the ride
    """
    try:
        rider = Rider.objects.get(ride=ride, user=user)
    except Rider.DoesNotExist:
        raise ValueError("User has not joined this ride")

    rider.notes = notes or ''
    rider.save(update_fields=['notes'])
    return rider


@transaction.atomic
def archive_rides(run_date: Optional[datetime] = None) -> ArchiveResult:
    """
    Move rides dated before run_date, with their riders, to the archive.

    Deleted and cancelled rides are archived too. Copies keep their ids and
    timestamps.

    Args:
        run_date: Archive rides before this datetime (defaults to now)

    Returns:
        ArchiveResult with the number of rides and riders moved
    """
    run_date = run_date or timezone.now()

    rides = list(Ride.objects.filter(ride_date__lt=run_date))
    riders = list(Rider.objects.filter(ride__ride_date__lt=run_date))

    ArchivedRide.objects.bulk_create([
        ArchivedRide(**{name: getattr(ride, name) for name in ARCHIVED_RIDE_FIELDS})
        for ride in rides
    ])
    ArchivedRider.objects.bulk_create([
        ArchivedRider(
            ride_id=rider.ride_id,
            user_id=rider.user_id,
            notes=rider.notes,
            created_at=rider.created_at
        )
        for rider in riders
    ])

    Rider.objects.filter(pk__in=[rider.pk for rider in riders]).delete()
    Ride.objects.filter(pk__in=[ride.pk for ride in rides]).delete()

    result = ArchiveResult(run_date=run_date, moved_rides=len(rides), moved_riders=len(riders))
    logger.info(
        "Archived %d ride(s) and %d rider(s) dated before %s",
        result.moved_rides,
        result.moved_riders,
        run_date.isoformat(),
    )
    return result
