"""
Serializers for the rides API.
"""

from rest_framework import serializers

from .exceptions import InvalidSchedule
from .models import WINTER_START_TIME_RE, RepeatingRide, Ride, Rider
from .recurrence import parse_schedule


class RepeatingRideReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying RepeatingRide (output)."""

    class Meta:
        model = RepeatingRide
        fields = [
            'id',
            'name',
            'schedule',
            'winter_start_time',
            'ride_group',
            'destination',
            'distance',
            'meet_point',
            'route',
            'leader',
            'notes',
            'ride_limit',
            'created_at',
            'updated_at',
        ]


class RepeatingRideWriteSerializer(serializers.Serializer):
    """Serializer for creating or replacing a RepeatingRide (input)."""

    name = serializers.CharField(min_length=3, max_length=255)
    schedule = serializers.CharField()
    winter_start_time = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    ride_group = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    destination = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    distance = serializers.IntegerField(required=False, allow_null=True)
    meet_point = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    route = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    leader = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    ride_limit = serializers.IntegerField(required=False)

    def validate_schedule(self, value):
        """Ensure the schedule parses as a recurrence rule."""
        try:
            parse_schedule(value)
        except InvalidSchedule as exc:
            raise serializers.ValidationError(str(exc))
        return value

    def validate_winter_start_time(self, value):
        """Ensure the winter start time is HH or HH:MM."""
        if value and not WINTER_START_TIME_RE.match(value):
            raise serializers.ValidationError('Winter start time must be HH or HH:MM.')
        return value


class RideReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying Ride (output)."""

    schedule_id = serializers.UUIDField(read_only=True, allow_null=True)
    is_generated = serializers.BooleanField(read_only=True)

    class Meta:
        model = Ride
        fields = [
            'id',
            'name',
            'ride_group',
            'ride_date',
            'destination',
            'distance',
            'meet_point',
            'route',
            'leader',
            'notes',
            'ride_limit',
            'cancelled',
            'schedule_id',
            'is_generated',
            'created_at',
            'updated_at',
        ]


class RiderSerializer(serializers.ModelSerializer):
    """Serializer for a ride's riders (output)."""

    user_id = serializers.IntegerField(read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = Rider
        fields = ['user_id', 'username', 'notes', 'created_at']


class RideDetailSerializer(RideReadSerializer):
    """Ride with its riders, in the order they joined."""

    riders = RiderSerializer(many=True, read_only=True)

    class Meta(RideReadSerializer.Meta):
        fields = RideReadSerializer.Meta.fields + ['riders']


class RiderRequestSerializer(serializers.Serializer):
    """Body of join and leave requests; user_id defaults to the caller."""

    user_id = serializers.IntegerField(required=False, allow_null=True)


class RiderNotesSerializer(RiderRequestSerializer):
    """Body of a rider notes update."""

    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ArchiveRequestSerializer(serializers.Serializer):
    """Serializer for the archive endpoint body."""

    date = serializers.DateTimeField(required=False, allow_null=True)


class GenerateRequestSerializer(serializers.Serializer):
    """Serializer for the generate endpoint body."""

    schedule_id = serializers.UUIDField(required=False, allow_null=True)
    date = serializers.DateTimeField(required=False, allow_null=True)


class DateRangeQuerySerializer(serializers.Serializer):
    """Serializer for date range query parameters."""

    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)

    def validate(self, data):
        """Ensure both or neither bound is given, and start is before end."""
        start = data.get('start')
        end = data.get('end')

        if (start is None) != (end is None):
            raise serializers.ValidationError(
                "Both start and end are required for a range."
            )

        if start is not None and start >= end:
            raise serializers.ValidationError(
                "Start datetime must be before end datetime."
            )
        return data
