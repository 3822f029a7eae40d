"""
Models for the club rides app.

Repeating rides are templates: their schedule (an iCalendar RRULE) says when
rides happen and the generation service turns them into Ride rows, one per
occurrence. A Ride keeps a reference to the template it came from but lives
on independently of it.
"""

import re
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from .exceptions import InvalidSchedule
from .managers import RepeatingRideManager, RideManager
from .recurrence import parse_schedule
from .types import DEFAULT_RIDE_LIMIT


WINTER_START_TIME_RE = re.compile(r'^\d{1,2}(:\d{2})?$')


class RideDetails(models.Model):
    """Descriptive fields shared by repeating rides and rides."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    ride_group = models.CharField(max_length=255, null=True, blank=True)
    destination = models.CharField(max_length=255, null=True, blank=True)
    distance = models.IntegerField(null=True, blank=True)
    meet_point = models.CharField(max_length=255, null=True, blank=True)
    route = models.CharField(max_length=255, null=True, blank=True)
    leader = models.CharField(max_length=255, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    ride_limit = models.IntegerField(
        default=DEFAULT_RIDE_LIMIT,
        help_text="Maximum number of riders (-1 = no limit)"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class RepeatingRide(RideDetails):
    """
    Template for rides that happen on a schedule.

    The schedule's DTSTART is moved forward every time rides are generated,
    so the next run starts where the previous one finished.
    """

    schedule = models.TextField(
        help_text="iCalendar recurrence rule including DTSTART"
    )
    winter_start_time = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Start time (HH:MM) used from November to February"
    )

    objects = RepeatingRideManager()

    class Meta:
        ordering = ['name', '-distance']
        indexes = [
            models.Index(fields=['name'], name='repeating_ride_name_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.schedule})"

    def clean(self):
        """Validate the schedule and winter start time."""
        super().clean()

        errors = {}
        try:
            parse_schedule(self.schedule)
        except InvalidSchedule as exc:
            errors['schedule'] = str(exc)

        if self.winter_start_time and not WINTER_START_TIME_RE.match(self.winter_start_time):
            errors['winter_start_time'] = 'Winter start time must be HH or HH:MM.'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class Ride(RideDetails):
    """
    A single ride on a given date.

    Rides generated from a repeating ride reference it through schedule;
    deleting the repeating ride leaves its rides in place.
    """

    ride_date = models.DateTimeField()
    deleted = models.BooleanField(default=False)
    cancelled = models.BooleanField(default=False)

    schedule = models.ForeignKey(
        RepeatingRide,
        on_delete=models.SET_NULL,
        related_name='rides',
        null=True,
        blank=True,
        help_text="Repeating ride this ride was generated from"
    )

    objects = RideManager()

    class Meta:
        ordering = ['ride_date']
        indexes = [
            models.Index(fields=['name'], name='ride_name_idx'),
            models.Index(fields=['ride_date', 'deleted'], name='ride_date_deleted_idx'),
        ]

    def __str__(self):
        status_str = " [cancelled]" if self.cancelled else ""
        return f"{self.name} - {self.ride_date.strftime('%Y-%m-%d %H:%M')}{status_str}"

    @property
    def is_generated(self):
        """Check if this ride was generated from a repeating ride."""
        return self.schedule_id is not None

    @property
    def is_full(self):
        """Check if the ride has reached its rider limit (a negative limit means none)."""
        return 0 <= self.ride_limit <= self.riders.count()


class Rider(models.Model):
    """A user who has joined a ride, with their notes for it."""

    ride = models.ForeignKey(Ride, on_delete=models.CASCADE, related_name='riders')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_bookings'
    )
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['ride', 'user'], name='rider_ride_user_unique'),
        ]
        indexes = [
            models.Index(fields=['ride', 'created_at'], name='rider_ride_created_idx'),
        ]

    def __str__(self):
        return f"{self.user} on {self.ride}"


class ArchivedRide(RideDetails):
    """
    A past ride moved out of the rides table by the archive job.

    Keeps the id it had as a Ride; the repeating ride it came from is
    recorded by id only.
    """

    id = models.UUIDField(primary_key=True, editable=False)
    ride_date = models.DateTimeField()
    deleted = models.BooleanField(default=False)
    cancelled = models.BooleanField(default=False)
    schedule_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()
    archived_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['ride_date']
        indexes = [
            models.Index(fields=['ride_date'], name='archived_ride_date_idx'),
        ]

    def __str__(self):
        return f"{self.name} - {self.ride_date.strftime('%Y-%m-%d %H:%M')} [archived]"


class ArchivedRider(models.Model):
    """A rider of an archived ride."""

    ride = models.ForeignKey(ArchivedRide, on_delete=models.CASCADE, related_name='riders')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='archived_ride_bookings'
    )
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['ride', 'user'], name='archived_rider_ride_user_unique'),
        ]
