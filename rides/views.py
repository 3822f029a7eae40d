"""Views for the club rides API."""

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404

from rest_framework import status
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import RepeatingRide, Ride
from .permissions import IsApiKeyOrAdminUser
from .recurrence import format_ride_date
from .serializers import (
    ArchiveRequestSerializer,
    DateRangeQuerySerializer,
    GenerateRequestSerializer,
    RepeatingRideReadSerializer,
    RepeatingRideWriteSerializer,
    RideDetailSerializer,
    RideReadSerializer,
    RiderNotesSerializer,
    RiderRequestSerializer,
)
from . import services
from .types import RepeatingRideData


class RepeatingRideListCreateView(APIView):
    """
    List all repeating rides or create a new one.

    GET /api/repeating-rides/ - List all repeating rides
    POST /api/repeating-rides/ - Create a new repeating ride
    """

    permission_classes = [IsAdminUser]

    def get(self, request):
        """List all repeating rides."""
        repeating_rides = RepeatingRide.objects.by_name()
        serializer = RepeatingRideReadSerializer(repeating_rides, many=True)
        return Response({'repeating_rides': serializer.data})

    def post(self, request):
        """Create a new repeating ride."""
        serializer = RepeatingRideWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        repeating_ride = services.create_repeating_ride(
            RepeatingRideData(**serializer.validated_data)
        )

        return Response({
            'success': True,
            'id': repeating_ride.id
        }, status=status.HTTP_201_CREATED)


class RepeatingRideDetailView(APIView):
    """
    Retrieve, replace, or delete a repeating ride.

    GET /api/repeating-rides/{id}/ - Retrieve repeating ride
    PUT /api/repeating-rides/{id}/ - Replace repeating ride
    DELETE /api/repeating-rides/{id}/ - Delete repeating ride
    """

    permission_classes = [IsAdminUser]

    def get(self, request, pk):
        """Retrieve a repeating ride."""
        repeating_ride = get_object_or_404(RepeatingRide, pk=pk)
        serializer = RepeatingRideReadSerializer(repeating_ride)
        return Response({'repeating_ride': serializer.data})

    def put(self, request, pk):
        """Replace a repeating ride."""
        repeating_ride = get_object_or_404(RepeatingRide, pk=pk)
        serializer = RepeatingRideWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        services.update_repeating_ride(
            repeating_ride,
            RepeatingRideData(**serializer.validated_data)
        )

        return Response({'success': True, 'id': repeating_ride.id})

    def delete(self, request, pk):
        """Delete a repeating ride."""
        repeating_ride = get_object_or_404(RepeatingRide, pk=pk)
        repeating_ride_id = repeating_ride.id

        services.delete_repeating_ride(repeating_ride)

        return Response({'success': True, 'id': repeating_ride_id})


class GenerateRidesView(APIView):
    """
    Generate rides from repeating rides.

    POST /api/generate/ - body {"schedule_id": optional, "date": optional}

    Called by the scheduler with the API key, or by an admin user.
    """

    permission_classes = [IsApiKeyOrAdminUser]

    def post(self, request):
        """Generate rides for one or all repeating rides."""
        serializer = GenerateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        schedule_id = serializer.validated_data.get('schedule_id')
        date = serializer.validated_data.get('date')

        report = services.generate_rides(
            schedule_id=str(schedule_id) if schedule_id else None,
            date=format_ride_date(date) if date else None
        )
        return Response(report.as_dict())


class RideListView(APIView):
    """
    List rides.

    GET /api/rides/?start=X&end=Y - List rides in range
    GET /api/rides/ - List upcoming rides
    """

    permission_classes = [AllowAny]

    def get(self, request):
        """List rides within a date range, or upcoming rides."""
        query_serializer = DateRangeQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        rides = services.get_rides_in_range(
            query_serializer.validated_data.get('start'),
            query_serializer.validated_data.get('end')
        )

        serializer = RideReadSerializer(rides, many=True)
        return Response(serializer.data)


class RideDetailView(APIView):
    """
    Retrieve a ride.

    GET /api/rides/{id}/
    """

    permission_classes = [AllowAny]

    def get(self, request, pk):
        """Retrieve a ride."""
        ride = get_object_or_404(
            Ride.objects.active().prefetch_related('riders__user'), pk=pk
        )
        serializer = RideDetailSerializer(ride)
        return Response(serializer.data)


class RideCancelView(APIView):
    """
    Cancel a ride.

    POST /api/rides/{id}/cancel/
    """

    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        """Mark ride as cancelled."""
        ride = get_object_or_404(Ride.objects.active(), pk=pk)

        try:
            services.cancel_ride(ride)
        except ValueError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'message': f'Ride "{ride.name}" on {ride.ride_date.date()} has been cancelled.'
        }, status=status.HTTP_200_OK)


def _target_user(request, user_id):
    """
    Resolve who a rider request is for.

    Members act for themselves; staff (leaders and admins) may name
    another user.
    """
    if user_id is None or user_id == request.user.pk:
        return request.user

    if not request.user.is_staff:
        raise PermissionDenied("Only leaders and admins can act for other riders.")

    return get_object_or_404(get_user_model(), pk=user_id)


class RideJoinView(APIView):
    """
    Join a ride.

    POST /api/rides/{id}/join/ - body {"user_id": optional}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        """Add the caller (or the given user) to the ride."""
        ride = get_object_or_404(Ride.objects.active(), pk=pk)
        serializer = RiderRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = _target_user(request, serializer.validated_data.get('user_id'))

        try:
            services.join_ride(ride, user)
        except ValueError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({'success': True})


class RideLeaveView(APIView):
    """
    Leave a ride.

    POST /api/rides/{id}/leave/ - body {"user_id": optional}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        """Remove the caller (or the given user) from the ride."""
        ride = get_object_or_404(Ride.objects.active(), pk=pk)
        serializer = RiderRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = _target_user(request, serializer.validated_data.get('user_id'))

        try:
            services.leave_ride(ride, user)
        except ValueError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({'success': True})


class RideNotesView(APIView):
    """
    Update a rider's notes for a ride.

    PATCH /api/rides/{id}/notes/ - body {"notes": "...", "user_id": optional}
    """

    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        """Set the notes of the caller (or the given user) on the ride."""
        ride = get_object_or_404(Ride.objects.active(), pk=pk)
        serializer = RiderNotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = _target_user(request, serializer.validated_data.get('user_id'))

        try:
            services.update_rider_notes(ride, user, serializer.validated_data.get('notes'))
        except ValueError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({'success': True})


class ArchiveRidesView(APIView):
    """
    Archive past rides.

    POST /api/archive/ - body {"date": optional, defaults to now}

    Called by the scheduler with the API key, or by an admin user.
    """

    permission_classes = [IsApiKeyOrAdminUser]

    def post(self, request):
        """Move rides dated before the given date to the archive."""
        serializer = ArchiveRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = services.archive_rides(serializer.validated_data.get('date'))
        return Response(result.as_dict())
