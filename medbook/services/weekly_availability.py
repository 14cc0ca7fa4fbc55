"""A doctor's recurring weekly schedule.

Stored schedules come from several generations of the profile editor, so
records may use ``day`` or ``dayName``, abbreviated weekday names, string
flags, 12-hour times, or be missing days entirely. ``WeeklyAvailability.from_records``
is the single place where those shapes are normalized; everything past it works
with a complete Monday..Sunday schedule.
"""

import logging
from datetime import date, datetime, time

from pydantic import BaseModel, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
WEEKEND_DAYS = frozenset({'Saturday', 'Sunday'})
DEFAULT_WEEKDAY_HOURS = (time(8, 0), time(17, 0))
DEFAULT_WEEKEND_HOURS = (time(8, 0), time(13, 0))
WALL_CLOCK_FORMATS = ('%H:%M', '%I:%M %p', '%I:%M%p', '%H:%M:%S')
RECORD_NAME_KEYS = ('day', 'dayName', 'weekday')
RECORD_FLAG_KEYS = ('dayAvailable', 'isAvailable', 'is_available')
TRUTHY_FLAGS = {'1', 'true', 'yes', 'on'}


def parse_wall_clock(value: str) -> time:
    """Parse ``"08:30"``, ``"16:30"``, ``"08:30 AM"`` or ``"8:30pm"`` into a time."""
    normalized = value.strip().upper()
    for time_format in WALL_CLOCK_FORMATS:
        try:
            return datetime.strptime(normalized, time_format).time()
        except ValueError:
            continue
    raise ValueError(f'Invalid time: {value!r}')


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def match_weekday(name) -> str | None:
    """Resolve a stored weekday label to its canonical name.

    Exact case-insensitive names win; abbreviated labels ("Thu", "thurs") fall
    back to a three-letter prefix match.
    """
    if not isinstance(name, str):
        return None

    cleaned = name.strip().lower()
    for weekday in WEEKDAYS:
        if weekday.lower() == cleaned:
            return weekday

    if len(cleaned) < 3:
        return None
    for weekday in WEEKDAYS:
        if weekday.lower()[:3] == cleaned[:3]:
            return weekday

    return None


def coerce_flag(value) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return True
        return normalized in TRUTHY_FLAGS
    return bool(value)


class Interval(BaseModel):
    start_time: time
    end_time: time
    available: bool = True

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_time_text(cls, value):
        if isinstance(value, str):
            return parse_wall_clock(value)
        return value

    @model_validator(mode='after')
    def validate_order(self) -> 'Interval':
        if self.start_time >= self.end_time:
            raise ValueError('Interval start time must be before its end time.')
        return self


class DayAvailability(BaseModel):
    weekday: str
    is_available: bool = True
    slots: list[Interval] = []

    @field_validator('weekday', mode='before')
    @classmethod
    def normalize_weekday(cls, value):
        resolved = match_weekday(value)
        if resolved is None:
            raise ValueError(f'Unknown weekday: {value!r}')
        return resolved

    def reconciled(self) -> 'DayAvailability':
        """Copy whose interval flags all follow the day-level flag."""
        return self.model_copy(update={
            'slots': [interval.model_copy(update={'available': self.is_available}) for interval in self.slots],
        })


def default_day(weekday: str) -> DayAvailability:
    start_time, end_time = DEFAULT_WEEKEND_HOURS if weekday in WEEKEND_DAYS else DEFAULT_WEEKDAY_HOURS
    return DayAvailability(
        weekday=weekday,
        is_available=True,
        slots=[Interval(start_time=start_time, end_time=end_time)],
    )


def _find_by_weekday(entries, weekday: str, name_of):
    target = weekday.lower()
    for entry in entries:
        name = name_of(entry)
        if isinstance(name, str) and name.strip().lower() == target:
            return entry
    for entry in entries:
        name = name_of(entry)
        if isinstance(name, str) and len(name.strip()) >= 3 and name.strip().lower()[:3] == target[:3]:
            return entry
    return None


def _record_value(record: dict, keys):
    for key in keys:
        if key in record:
            return record[key]
    return None


def _record_name(record) -> str | None:
    if not isinstance(record, dict):
        return None
    return _record_value(record, RECORD_NAME_KEYS)


def _day_from_record(weekday: str, record: dict) -> DayAvailability:
    is_available = coerce_flag(_record_value(record, RECORD_FLAG_KEYS))
    intervals: list[Interval] = []

    for raw_slot in record.get('slots') or []:
        if not isinstance(raw_slot, dict):
            logger.warning('Dropping non-object slot %r for %s', raw_slot, weekday)
            continue
        try:
            interval = Interval(
                start_time=raw_slot.get('startTime', raw_slot.get('start_time')),
                end_time=raw_slot.get('endTime', raw_slot.get('end_time')),
                available=is_available,
            )
        except (ValidationError, ValueError):
            logger.warning('Dropping malformed slot %r for %s', raw_slot, weekday)
            continue
        intervals.append(interval)

    return DayAvailability(weekday=weekday, is_available=is_available, slots=intervals)


class WeeklyAvailability(BaseModel):
    days: list[DayAvailability]

    @field_validator('days')
    @classmethod
    def validate_unique_weekdays(cls, days: list[DayAvailability]) -> list[DayAvailability]:
        weekdays = [day.weekday for day in days]
        if len(set(weekdays)) != len(weekdays):
            raise ValueError('Each weekday may appear only once.')
        return days

    def resolve_day(self, weekday: str) -> DayAvailability:
        day = _find_by_weekday(self.days, weekday, lambda entry: entry.weekday)
        if day is None:
            logger.info('No schedule entry for %s, using default hours', weekday)
            return default_day(weekday)
        return day

    def day_for_date(self, day: date) -> DayAvailability:
        return self.resolve_day(weekday_name(day))

    def to_records(self) -> list[dict]:
        return [
            {
                'day': day.weekday,
                'dayAvailable': day.is_available,
                'slots': [
                    {
                        'startTime': interval.start_time.strftime('%H:%M'),
                        'endTime': interval.end_time.strftime('%H:%M'),
                        'available': interval.available,
                    }
                    for interval in day.slots
                ],
            }
            for day in self.days
        ]

    @classmethod
    def default(cls) -> 'WeeklyAvailability':
        return cls(days=[default_day(weekday) for weekday in WEEKDAYS])

    @classmethod
    def from_edit(cls, days: list[DayAvailability]) -> 'WeeklyAvailability':
        """Build the schedule saved by the profile editor.

        Interval flags always follow the day flag; weekdays the editor did not
        send get default hours.
        """
        submitted = cls(days=days)
        return cls(days=[submitted.resolve_day(weekday).reconciled() for weekday in WEEKDAYS])

    @classmethod
    def from_records(cls, records) -> 'WeeklyAvailability':
        if isinstance(records, dict):
            records = [
                {**value, 'day': key} if isinstance(value, dict) else value
                for key, value in records.items()
            ]
        if not isinstance(records, list):
            records = []

        days: list[DayAvailability] = []
        for weekday in WEEKDAYS:
            record = _find_by_weekday(records, weekday, _record_name)
            if record is None:
                days.append(default_day(weekday))
                continue
            days.append(_day_from_record(weekday, record))

        return cls(days=days)
