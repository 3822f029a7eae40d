"""
Custom managers and querysets for ride models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models
from django.utils import timezone


class RepeatingRideQuerySet(models.QuerySet):
    """Custom queryset for RepeatingRide model with chainable methods."""

    def by_name(self):
        """Order by name, longest distance first within a name."""
        return self.order_by('name', '-distance')


class RepeatingRideManager(models.Manager):
    """Custom manager for RepeatingRide model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return RepeatingRideQuerySet(self.model, using=self._db)

    def by_name(self):
        """Order by name, longest distance first within a name."""
        return self.get_queryset().by_name()


class RideQuerySet(models.QuerySet):
    """Custom queryset for Ride model with chainable methods."""

    def active(self):
        """Get rides that have not been deleted."""
        return self.filter(deleted=False)

    def upcoming(self):
        """Get upcoming rides that have not been deleted."""
        return self.active().filter(ride_date__gte=timezone.now())

    def in_range(self, start_datetime, end_datetime):
        """
        Get rides within a datetime range.

        Args:
            start_datetime: datetime object
            end_datetime: datetime object
        """
        return self.filter(
            ride_date__gte=start_datetime,
            ride_date__lte=end_datetime
        )

    def for_schedule(self, repeating_ride):
        """
        Get all rides generated from a repeating ride.

        Args:
            repeating_ride: RepeatingRide instance
        """
        return self.filter(schedule=repeating_ride)


class RideManager(models.Manager):
    """Custom manager for Ride model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return RideQuerySet(self.model, using=self._db)

    def active(self):
        """Get rides that have not been deleted."""
        return self.get_queryset().active()

    def upcoming(self):
        """Get upcoming rides that have not been deleted."""
        return self.get_queryset().upcoming()

    def in_range(self, start_datetime, end_datetime):
        """
        Get rides within a datetime range.

        Args:
            start_datetime: datetime object
            end_datetime: datetime object
        """
        return self.get_queryset().in_range(start_datetime, end_datetime)

    def for_schedule(self, repeating_ride):
        """
        Get all rides generated from a repeating ride.

        Args:
            repeating_ride: RepeatingRide instance
        """
        return self.get_queryset().for_schedule(repeating_ride)
