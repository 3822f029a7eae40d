"""
URL routing for the rides API.
"""

from django.urls import path
from .views import (
    ArchiveRidesView,
    GenerateRidesView,
    RepeatingRideDetailView,
    RepeatingRideListCreateView,
    RideCancelView,
    RideDetailView,
    RideJoinView,
    RideLeaveView,
    RideListView,
    RideNotesView,
)

urlpatterns = [
    path('repeating-rides/', RepeatingRideListCreateView.as_view(), name='repeating-ride-list-create'),
    path('repeating-rides/<uuid:pk>/', RepeatingRideDetailView.as_view(), name='repeating-ride-detail'),
    path('generate/', GenerateRidesView.as_view(), name='generate-rides'),
    path('archive/', ArchiveRidesView.as_view(), name='archive-rides'),
    path('rides/', RideListView.as_view(), name='ride-list'),
    path('rides/<uuid:pk>/', RideDetailView.as_view(), name='ride-detail'),
    path('rides/<uuid:pk>/cancel/', RideCancelView.as_view(), name='ride-cancel'),
    path('rides/<uuid:pk>/join/', RideJoinView.as_view(), name='ride-join'),
    path('rides/<uuid:pk>/leave/', RideLeaveView.as_view(), name='ride-leave'),
    path('rides/<uuid:pk>/notes/', RideNotesView.as_view(), name='ride-notes'),
]
