"""
Recurring ride generation.

Expands a repeating ride's schedule (an iCalendar RRULE) into concrete rides
for one calendar month, applies the winter start time, and moves the
schedule's DTSTART forward once rides have been generated.

Nothing in this module touches the database. A schedule without a TZID is
evaluated in naive UTC wall-clock time; one with a TZID is evaluated in that
zone. Every instant handed back is a UTC-aware datetime.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from dateutil import tz
from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from dateutil.rrule import FREQNAMES, MONTHLY, WEEKLY, YEARLY, rrule, rrulestr

from .exceptions import InvalidSchedule
from .types import OPTIONAL_RIDE_FIELDS, WINTER_MONTHS, RideSet


logger = logging.getLogger(__name__)

DateLike = Union[datetime, str]

# dateutil fills BYDAY, BYMONTH and BYMONTHDAY from DTSTART unless one of these is given
DAY_SELECTING_PARTS = frozenset({'BYDAY', 'BYMONTHDAY', 'BYWEEKNO', 'BYYEARDAY', 'BYEASTER'})


class Schedule(NamedTuple):
    """A parsed schedule together with the text it came from."""
    rule: rrule
    dtstart: datetime
    tzid: Optional[str]
    parts: List[str]


def get_period_window(reference_date: Optional[DateLike] = None) -> Tuple[datetime, datetime]:
    """
    Get the generation window for a reference date.

    Args:
        reference_date: datetime or ISO-8601 string (defaults to now)

    Returns:
        Tuple of (start, end): start is the reference date itself, end is
        midnight UTC on the first day of the following month
    """
    start = _to_utc(reference_date) if reference_date else datetime.now(timezone.utc)
    month_start = start.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, month_start + relativedelta(months=1)


def get_next_month_start(reference_date: Optional[DateLike] = None) -> datetime:
    """First day of the month after the reference date (or now), at midnight UTC."""
    return get_period_window(reference_date)[1]


def is_winter(instant: DateLike) -> bool:
    """Check if an instant falls in November to February (UTC)."""
    return _to_utc(instant).month in WINTER_MONTHS


def apply_winter_time(instant: datetime, winter_start_time: Optional[str]) -> datetime:
    """
    Move a winter occurrence to the repeating ride's winter start time.

    "HH:MM" replaces hour and minute, "HH" replaces only the hour, both in
    the instant's own time zone (naive instants are UTC). Summer instants,
    a missing start time and malformed values leave the instant unchanged.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if not isinstance(winter_start_time, str) or not is_winter(instant):
        return instant

    fields = winter_start_time.strip().split(':')
    changes = {}
    try:
        if fields[0]:
            changes['hour'] = int(fields[0])
        if len(fields) > 1 and fields[1]:
            changes['minute'] = int(fields[1])
        return instant.replace(**changes)
    except ValueError:
        logger.debug("Ignoring malformed winter start time %r", winter_start_time)
        return instant


def generate_ride(template, instant: datetime) -> Dict[str, Any]:
    """
    Build a single ride from a repeating ride template.

    The result is a sparse mapping: optional fields the template leaves
    empty are left out rather than set to None, so model defaults apply
    when the ride is saved.

    Args:
        template: RepeatingRide (or any object with the same attributes)
        instant: Occurrence datetime, already adjusted for winter time

    Returns:
        Dict of ride field values
    """
    ride = {
        'name': template.name,
        'ride_date': format_ride_date(instant),
    }
    for field_name in OPTIONAL_RIDE_FIELDS:
        value = getattr(template, field_name, None)
        if _has_value(value):
            ride[field_name] = value

    template_id = getattr(template, 'id', None)
    if _has_value(template_id):
        ride['schedule_id'] = template_id
    return ride


def make_rides_in_period(template, reference_date: Optional[DateLike] = None) -> RideSet:
    """
    Generate the rides of a repeating ride for one period.

    Args:
        template: RepeatingRide (or any object with the same attributes)
        reference_date: Start of the period (defaults to now); the period
                        runs to the end of that month

    Returns:
        RideSet with the template id, its unmodified schedule and the rides
        in chronological order

    Raises:
        InvalidSchedule: If the template's schedule does not parse
    """
    start, end = get_period_window(reference_date)
    schedule = read_schedule(template.schedule)
    occurrences = _occurrences_between(schedule, start, end)

    winter_start_time = getattr(template, 'winter_start_time', None)
    rides = [
        generate_ride(template, apply_winter_time(occurrence, winter_start_time))
        for occurrence in occurrences
    ]

    return RideSet(
        id=getattr(template, 'id', None),
        schedule=template.schedule,
        rides=rides,
        last_occurrence=_to_utc(occurrences[-1]) if occurrences else None,
    )


def update_schedule_start_date(schedule: str, start_date: Optional[DateLike] = None) -> str:
    """
    Move a schedule's DTSTART to the day after start_date.

    Every other part of the rule keeps its text. UNTIL is never adjusted,
    so a rule may end up with no further occurrences. A COUNT is turned
    into an UNTIL at the series' last occurrence, since counting again from
    the new DTSTART would restart the series.

    Args:
        schedule: RRULE text
        start_date: Date of the last generated ride (datetime or ISO string)

    Returns:
        Updated RRULE text, or the schedule unchanged if start_date is empty

    Raises:
        InvalidSchedule: If the schedule does not parse
    """
    if not start_date:
        return schedule

    parsed = read_schedule(schedule)
    start = _to_utc(start_date)
    if parsed.tzid:
        dtstart = start.astimezone(parsed.dtstart.tzinfo) + timedelta(days=1)
    else:
        dtstart = start.replace(tzinfo=None) + timedelta(days=1)

    values = _part_values(parsed.parts)
    changes = _pinned_options(values, parsed.dtstart)
    if 'COUNT' in values:
        last = parsed.rule[-1]
        changes['count'] = None
        changes['until'] = last.astimezone(tz.UTC) if parsed.tzid else last

    return format_schedule(parsed.rule.replace(dtstart=dtstart, **changes), parsed.tzid, parsed.parts)


def parse_schedule(schedule: str) -> rrule:
    """
    Parse schedule text into a dateutil rrule.

    Accepts DTSTART either inline ("FREQ=WEEKLY;BYDAY=SA;DTSTART=20260301T090000")
    or as its own line ("DTSTART:20260301T090000Z\\nRRULE:FREQ=WEEKLY"),
    optionally with a time zone ("DTSTART;TZID=Europe/London:20260301T090000").
    A DTSTART without a TZID or UTC designator is read as UTC.

    Raises:
        InvalidSchedule: If the text has no DTSTART or is not a valid rule
    """
    return read_schedule(schedule).rule


def read_schedule(schedule: str) -> Schedule:
    """Parse schedule text, keeping its DTSTART, TZID and rule parts."""
    if not isinstance(schedule, str) or not schedule.strip():
        raise InvalidSchedule(schedule, 'empty schedule')

    dtstart_text, tzid, parts = _split_schedule(schedule)
    if dtstart_text is None:
        raise InvalidSchedule(schedule, 'missing DTSTART')

    values = _part_values(parts)
    if 'COUNT' in values and 'UNTIL' in values:
        raise InvalidSchedule(schedule, 'COUNT and UNTIL cannot both be given')
    if 'COUNT' in values and not (values['COUNT'].isdigit() and int(values['COUNT']) > 0):
        raise InvalidSchedule(schedule, 'COUNT must be a positive integer')

    try:
        dtstart = _parse_dtstart(dtstart_text, tzid)
        rule = rrulestr(';'.join(parts), dtstart=dtstart, ignoretz=tzid is None)
    except (ValueError, TypeError) as exc:
        raise InvalidSchedule(schedule, str(exc)) from exc
    return Schedule(rule=rule, dtstart=dtstart, tzid=tzid, parts=parts)


def format_schedule(rule: rrule, tzid: Optional[str] = None, parts: Sequence[str] = ()) -> str:
    """
    Serialize a rule as DTSTART and RRULE lines.

    Rule parts listed in parts keep their text and order, so a schedule
    reads back the way it was entered. Parts the rule holds beyond those
    are taken from str(rule) and placed after FREQ. DTSTART is written in
    UTC with a Z, or as local time with its TZID; UNTIL is always UTC.
    """
    dtstart_line, rrule_line = str(rule).splitlines()
    dtstart_value = dtstart_line.partition(':')[2]
    if tzid:
        dtstart_line = f'DTSTART;TZID={tzid}:{dtstart_value}'
    else:
        dtstart_line = f'DTSTART:{dtstart_value}Z'

    rendered = {_part_name(part): part for part in rrule_line.partition(':')[2].split(';')}
    if 'UNTIL' in rendered:
        rendered['UNTIL'] += 'Z'

    written = []
    for part in parts:
        name = _part_name(part)
        # COUNT only reaches here once it has been turned into an UNTIL
        written.append(rendered['UNTIL'] if name in ('COUNT', 'UNTIL') else part)

    names = {_part_name(part) for part in written}
    added = [part for name, part in rendered.items() if name not in names]
    position = next(
        (index + 1 for index, part in enumerate(written) if _part_name(part) == 'FREQ'),
        0
    )
    written[position:position] = added

    return '\n'.join([dtstart_line, 'RRULE:' + ';'.join(written)])


def format_ride_date(instant: datetime) -> str:
    """ISO-8601 UTC string with milliseconds, e.g. 2026-03-07T09:00:00.000Z."""
    return _to_utc(instant).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _occurrences_between(schedule: Schedule, start: datetime, end: datetime) -> List[datetime]:
    """Occurrences in [start, end) as aware datetimes in the schedule's zone."""
    if not schedule.tzid:
        start, end = _to_naive_utc(start), _to_naive_utc(end)

    return [
        occurrence if occurrence.tzinfo else occurrence.replace(tzinfo=timezone.utc)
        for occurrence in schedule.rule.between(start, end, inc=True)
        if occurrence < end
    ]


def _pinned_options(values: Dict[str, str], dtstart: datetime) -> Dict[str, Any]:
    """
    BY* values dateutil derives from DTSTART when the rule gives none.

    They are passed explicitly when DTSTART moves, so the series stays on
    the same days.
    """
    if DAY_SELECTING_PARTS & values.keys():
        return {}

    freq = FREQNAMES.index(values['FREQ'].upper())
    if freq == YEARLY:
        options = {'bymonthday': dtstart.day}
        if 'BYMONTH' not in values:
            options['bymonth'] = dtstart.month
        return options
    if freq == MONTHLY:
        return {'bymonthday': dtstart.day}
    if freq == WEEKLY:
        return {'byweekday': dtstart.weekday()}
    return {}


def _split_schedule(schedule: str) -> Tuple[Optional[str], Optional[str], List[str]]:
    """Separate the DTSTART value and its TZID from the RRULE parts of a schedule."""
    dtstart = None
    tzid = None
    parts = []
    for line in schedule.split():
        name, sep, value = line.partition(':')
        if sep and name.upper().startswith('DTSTART'):
            dtstart = value
            for param in name.split(';')[1:]:
                key, _, param_value = param.partition('=')
                if key.upper() == 'TZID':
                    tzid = param_value
            continue
        if sep and name.upper() == 'RRULE':
            line = value

        for part in line.split(';'):
            if part.upper().startswith('DTSTART='):
                dtstart = part.partition('=')[2]
            elif part:
                parts.append(part)
    return dtstart, tzid, parts


def _parse_dtstart(value: str, tzid: Optional[str]) -> datetime:
    """Naive UTC for a plain DTSTART, an aware local time for one with a TZID."""
    if not tzid:
        return _to_naive_utc(value)

    zone = tz.gettz(tzid)
    if zone is None:
        raise ValueError(f'unknown time zone {tzid!r}')
    local = isoparse(value)
    if local.tzinfo is not None:
        raise ValueError('DTSTART with a TZID must be a local time')
    return local.replace(tzinfo=zone)


def _part_values(parts: Sequence[str]) -> Dict[str, str]:
    return {_part_name(part): part.partition('=')[2] for part in parts}


def _part_name(part: str) -> str:
    return part.partition('=')[0].upper()


def _has_value(value) -> bool:
    return value is not None and value != ''


def _to_utc(value: DateLike) -> datetime:
    """Parse a datetime or ISO string as an aware UTC datetime; naive means UTC."""
    if isinstance(value, str):
        value = isoparse(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_utc(value: DateLike) -> datetime:
    return _to_utc(value).replace(tzinfo=None)
