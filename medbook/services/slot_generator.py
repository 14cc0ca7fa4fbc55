from datetime import date, datetime, time, timedelta

from medbook.services.weekly_availability import WeeklyAvailability, parse_wall_clock

SLOT_INCREMENT_MINUTES = 30
SLOT_DISPLAY_FORMAT = '%I:%M %p'


def iterate_interval_starts(start_time: time, end_time: time) -> list[time]:
    """Start times of the whole slots that fit inside ``[start_time, end_time)``."""
    step = timedelta(minutes=SLOT_INCREMENT_MINUTES)
    current = datetime.combine(date.min, start_time)
    interval_end = datetime.combine(date.min, end_time)

    starts: list[time] = []
    while current + step <= interval_end:
        starts.append(current.time())
        current += step

    return starts


def is_day_open(weekly_availability: WeeklyAvailability, slot_date: date) -> bool:
    return weekly_availability.day_for_date(slot_date).is_available


def generate(weekly_availability: WeeklyAvailability, slot_date: date) -> list[time]:
    """Bookable start times for ``slot_date``, ascending and without duplicates.

    Already-booked times are not removed here; the booking path rejects them.
    """
    day = weekly_availability.day_for_date(slot_date)
    if not day.is_available:
        return []

    starts: set[time] = set()
    for interval in day.slots:
        # Legacy records can close a single interval on an open day.
        if not interval.available:
            continue
        starts.update(iterate_interval_starts(interval.start_time, interval.end_time))

    return sorted(starts)


def format_slot(slot_time: time) -> str:
    return slot_time.strftime(SLOT_DISPLAY_FORMAT)


def parse_slot(value: str) -> time:
    return parse_wall_clock(value)
