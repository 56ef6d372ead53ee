from __future__ import annotations

from sqlalchemy.orm import Session

from dormmate.core.time_provider import TimeProvider, default_time_provider
from dormmate.services import booking_service, mess_menu_service


def _room_section(db: Session, user_id: int) -> list[str]:
    booking = booking_service.active_booking(db, user_id)
    if booking is None:
        return ['Room: the student has no active room assignment.']
    room = booking['room']
    lines = [f"Room: {room['room_number']} on floor {room['floor']} (capacity {room['capacity']})."]
    mates = booking_service.roommates(db, user_id, booking['room_id'])
    if mates:
        names = ', '.join(mate['full_name'] or mate['email'] for mate in mates)
        lines.append(f'Roommates: {names}.')
    else:
        lines.append('Roommates: none.')
    return lines


def _menu_section(db: Session, time_provider: TimeProvider) -> list[str]:
    menu = mess_menu_service.todays_menu(db, time_provider=time_provider)
    if not menu['meals']:
        return [f"Mess menu for {menu['day_of_week']}: not published yet."]
    lines = [f"Mess menu for {menu['day_of_week']}:"]
    for meal in menu['meals']:
        lines.append(f"- {meal['meal_type']}: {', '.join(meal['items'])}")
    return lines


def _booking_section(db: Session, user_id: int) -> list[str]:
    bookings = booking_service.bookings_for_user(db, user_id)
    if not bookings:
        return ['Bookings: none.']
    lines = ['Bookings:']
    for booking in bookings:
        room_number = (booking['room'] or {}).get('room_number', '?')
        lines.append(
            f"- room {room_number} from {booking['start_date']} to {booking['end_date']}, "
            f"status {booking['status']}, payment {booking['payment_status']}"
        )
    return lines


def build_context(
    db: Session,
    user_id: int,
    message: str,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> str | None:
    """Facts about the asking student's own data, chosen by keywords in ``message``.

    Returns None when no keyword applies.
    """
    lowered = (message or '').lower()
    lines: list[str] = []
    if 'room' in lowered:
        lines.extend(_room_section(db, user_id))
    if 'mess' in lowered or 'food' in lowered:
        lines.extend(_menu_section(db, time_provider))
    if 'booking' in lowered:
        lines.extend(_booking_section(db, user_id))
    if not lines:
        return None
    return 'Information about the current user:\n' + '\n'.join(lines)
