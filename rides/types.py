"""
Data types and constants for the rides app.

This module contains:
- DTOs (Data Transfer Objects) for service layer operations
- Constants used across the application
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


DEFAULT_RIDE_LIMIT = -1

# November to February (UTC months)
WINTER_MONTHS = frozenset({11, 12, 1, 2})

# Copied from a template onto each generated ride, only when set
OPTIONAL_RIDE_FIELDS = (
    'ride_group',
    'destination',
    'distance',
    'meet_point',
    'route',
    'leader',
    'notes',
    'ride_limit',
)

GENERATE_ERROR_MESSAGE = 'Failed to create rides'

# Copied from a Ride onto its ArchivedRide
ARCHIVED_RIDE_FIELDS = (
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
    'deleted',
    'cancelled',
    'schedule_id',
    'created_at',
    'updated_at',
)


@dataclass
class RideSet:
    """Rides expanded from one repeating ride for one period."""
    id: Any
    schedule: str
    rides: List[Dict[str, Any]] = field(default_factory=list)
    last_occurrence: Optional[datetime] = None


@dataclass
class GenerateResult:
    """Outcome of persisting one RideSet."""
    schedule_id: Optional[str] = None
    count: Optional[int] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in vars(self).items() if value is not None}


@dataclass
class GenerationReport:
    """Outcome of a generation run across one or more repeating rides."""
    generate_from_date: str
    results: List[GenerateResult] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for result in self.results if result.error)

    @property
    def success(self) -> bool:
        return self.error_count == 0

    @property
    def ride_count(self) -> int:
        return sum(result.count or 0 for result in self.results)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'generate_from_date': self.generate_from_date,
            'results': [result.as_dict() for result in self.results],
        }


@dataclass
class RepeatingRideData:
    """DTO for repeating ride create and update operations."""
    name: str
    schedule: str
    winter_start_time: Optional[str] = None
    ride_group: Optional[str] = None
    destination: Optional[str] = None
    distance: Optional[int] = None
    meet_point: Optional[str] = None
    route: Optional[str] = None
    leader: Optional[str] = None
    notes: Optional[str] = None
    ride_limit: Optional[int] = None


@dataclass
class ArchiveResult:
    """Outcome of moving past rides and their riders to the archive."""
    run_date: datetime
    moved_rides: int = 0
    moved_riders: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'run_date': self.run_date.isoformat(),
            'archive_results': {
                'moved_rides': self.moved_rides,
                'moved_riders': self.moved_riders,
            },
        }
