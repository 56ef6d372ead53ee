"""Dashboard counters, recomputed from bulk-fetched rows on every call."""

from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime
from typing import Any, Iterable

from dormmate.utils.booking import is_occupying


def _get(row: Any, key: str, default=None):
    if isinstance(row, dict):
        return row.get(key, default)
    return getattr(row, key, default)


def _as_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def occupied_by_room(bookings: Iterable[Any]) -> Counter:
    return Counter(
        int(_get(booking, 'room_id'))
        for booking in bookings
        if is_occupying(_get(booking, 'status', ''))
    )


def occupancy_rate(rooms: Iterable[Any], bookings: Iterable[Any]) -> int:
    """Occupied beds over total beds as a whole percentage; 0 with no capacity."""
    occupied = occupied_by_room(bookings)
    total_capacity = 0
    total_occupied = 0
    for room in rooms:
        capacity = int(_get(room, 'capacity', 0) or 0)
        total_capacity += capacity
        total_occupied += min(capacity, occupied.get(int(_get(room, 'id')), 0))
    return occupancy_percentage(total_occupied, total_capacity)


def occupancy_percentage(occupied: int, capacity: int) -> int:
    if capacity <= 0:
        return 0
    # Half rounds up (62.5 -> 63).
    return int(math.floor(100 * occupied / capacity + 0.5))


def attendance_stats(records: Iterable[Any], today: date) -> dict:
    todays = [record for record in records if _as_date(_get(record, 'date')) == today]
    checked_in = sum(1 for record in todays if _get(record, 'check_in'))
    checked_out = sum(1 for record in todays if _get(record, 'check_out'))
    return {
        'checked_in': checked_in,
        'checked_out': checked_out,
        'currently_outside': max(0, checked_in - checked_out),
    }


def available_rooms(rooms: Iterable[Any]) -> int:
    return sum(1 for room in rooms if _get(room, 'is_available'))
