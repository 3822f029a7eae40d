"""
Admin configuration for the rides app.
"""

from django.contrib import admin
from .models import ArchivedRide, ArchivedRider, RepeatingRide, Ride, Rider


@admin.register(RepeatingRide)
class RepeatingRideAdmin(admin.ModelAdmin):
    """Admin interface for RepeatingRide model."""

    list_display = ['name', 'ride_group', 'destination', 'distance', 'winter_start_time', 'updated_at']
    list_filter = ['ride_group', 'created_at']
    search_fields = ['name', 'destination', 'leader']

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'ride_group', 'destination', 'distance', 'ride_limit')
        }),
        ('Schedule', {
            'fields': ('schedule', 'winter_start_time')
        }),
        ('Details', {
            'fields': ('meet_point', 'route', 'leader', 'notes')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']


class RiderInline(admin.TabularInline):
    """Riders shown on the ride page."""

    model = Rider
    extra = 0
    fields = ['user', 'notes', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Admin interface for Ride model."""

    list_display = ['name', 'ride_date', 'ride_group', 'distance', 'cancelled', 'deleted', 'schedule']
    list_filter = ['cancelled', 'deleted', 'ride_group', 'schedule']
    search_fields = ['name', 'destination', 'leader']
    date_hierarchy = 'ride_date'

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'ride_group', 'destination', 'distance', 'ride_limit', 'schedule')
        }),
        ('Schedule', {
            'fields': ('ride_date',)
        }),
        ('Details', {
            'fields': ('meet_point', 'route', 'leader', 'notes')
        }),
        ('Status', {
            'fields': ('cancelled', 'deleted')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']
    inlines = [RiderInline]


class ArchivedRiderInline(admin.TabularInline):
    """Riders of an archived ride."""

    model = ArchivedRider
    extra = 0
    can_delete = False
    readonly_fields = ['user', 'notes', 'created_at']


@admin.register(ArchivedRide)
class ArchivedRideAdmin(admin.ModelAdmin):
    """Read-only admin interface for archived rides."""

    list_display = ['name', 'ride_date', 'ride_group', 'distance', 'cancelled', 'archived_at']
    list_filter = ['cancelled', 'ride_group']
    search_fields = ['name', 'destination', 'leader']
    date_hierarchy = 'ride_date'
    inlines = [ArchivedRiderInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
