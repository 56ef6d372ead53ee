from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import Date, DateTime, Integer, String, func, insert, literal, select, update
from sqlalchemy.orm import Session, aliased, joinedload

from dormmate.core.confirm import require_confirmation
from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.core.time_provider import default_time_provider
from dormmate.models import Booking, Room, User
from dormmate.realtime.feed import INSERT, UPDATE
from dormmate.realtime.hooks import record_change, row_dict
from dormmate.utils.booking import (
    OCCUPYING_STATUSES,
    default_booking_status,
    default_payment_status,
    is_occupying,
    validate_booking_statuses,
)


logger = logging.getLogger(__name__)

BOOKING_SEARCH_FIELDS = ('user.full_name', 'user.email', 'room.room_number')
ROOM_FULL_MESSAGE = 'Room is at full capacity'


class RoomFullError(ValueError):
    pass


def serialize_booking(booking: Booking) -> dict:
    user = booking.user
    room = booking.room
    return {
        'id': booking.id,
        'user_id': booking.user_id,
        'room_id': booking.room_id,
        'start_date': booking.start_date,
        'end_date': booking.end_date,
        'payment_status': booking.payment_status,
        'status': booking.status,
        'created_at': booking.created_at,
        'user': {'id': user.id, 'full_name': user.full_name, 'email': user.email} if user else None,
        'room': {
            'id': room.id,
            'room_number': room.room_number,
            'floor': room.floor,
            'capacity': room.capacity,
        } if room else None,
    }


def _occupancy(room_id: int, *, exclude_booking_id: int | None = None):
    # Aliased so it never correlates with the bookings row being written.
    counted = aliased(Booking)
    query = select(func.count(counted.id)).where(
        counted.room_id == room_id,
        counted.status.in_(OCCUPYING_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.where(counted.id != exclude_booking_id)
    return query.correlate(None).scalar_subquery()


def room_occupancy(db: Session, room_id: int) -> int:
    return int(db.execute(select(_occupancy(room_id))).scalar() or 0)


def sync_room_availability(db: Session, room_id: int) -> bool:
    """Recompute ``is_available`` as occupancy < capacity. Does not commit."""
    room = db.get(Room, int(room_id))
    if room is None:
        return False
    available = room_occupancy(db, room.id) < int(room.capacity or 0)
    if room.is_available != available:
        room.is_available = available
    return available


def _check_statuses(payment_status: str, status: str) -> None:
    result = validate_booking_statuses(payment_status, status)
    if not result.is_valid:
        raise ValueError('; '.join(result.errors))


def _check_dates(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValueError('End date must be on or after the start date')


def room_lock_query(db: Session, room_id: int):
    """Room row ``SELECT ... FOR UPDATE``; SQLite ignores the lock clause."""
    return db.query(Room).filter(Room.id == int(room_id)).with_for_update()


def _require_user_and_room(db: Session, user_id: int, room_id: int) -> None:
    """Check both rows exist and lock the room row until the transaction ends."""
    if db.get(User, int(user_id)) is None:
        raise NotFoundError('User not found')
    room = room_lock_query(db, room_id).first()
    if room is None:
        raise NotFoundError('Room not found')
    logger.debug('booking_room_locked room_id=%s', room.id)


def _get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, int(booking_id))
    if booking is None:
        raise NotFoundError('Booking not found')
    return booking


def _load_joined(db: Session, booking_id: int) -> Booking:
    return (
        db.query(Booking)
        .options(joinedload(Booking.user), joinedload(Booking.room))
        .filter(Booking.id == booking_id)
        .one()
    )


def create_booking(
    db: Session,
    *,
    user_id: int,
    room_id: int,
    start_date: date,
    end_date: date,
    payment_status: str | None = None,
    status: str | None = None,
) -> dict:
    """Assign a student to a room.

    The capacity check and the insert are one ``INSERT ... SELECT`` statement
    guarded by ``occupancy < capacity``; when it writes nothing the room was
    full and :class:`RoomFullError` is raised.
    """
    payment_status = payment_status or default_payment_status()
    status = status or default_booking_status()
    _check_statuses(payment_status, status)
    _check_dates(start_date, end_date)
    _require_user_and_room(db, user_id, room_id)

    now = default_time_provider.utc_now()
    source = select(
        literal(int(user_id), Integer),
        literal(int(room_id), Integer),
        literal(start_date, Date),
        literal(end_date, Date),
        literal(payment_status, String),
        literal(status, String),
        literal(now, DateTime),
        literal(now, DateTime),
    ).where(Room.id == room_id)
    if is_occupying(status):
        source = source.where(_occupancy(room_id) < Room.capacity)

    statement = (
        insert(Booking)
        .from_select(
            ['user_id', 'room_id', 'start_date', 'end_date', 'payment_status', 'status', 'created_at', 'updated_at'],
            source,
        )
        .returning(Booking.id)
    )
    booking_id = db.execute(statement).scalar_one_or_none()
    if booking_id is None:
        db.rollback()
        logger.info('booking_capacity_rejected room_id=%s user_id=%s', room_id, user_id)
        raise RoomFullError(ROOM_FULL_MESSAGE)

    booking = db.get(Booking, booking_id)
    record_change(db, 'bookings', INSERT, new=row_dict(booking))
    sync_room_availability(db, room_id)
    db.commit()
    logger.info('booking_created booking_id=%s room_id=%s user_id=%s', booking_id, room_id, user_id)
    return serialize_booking(_load_joined(db, booking_id))


def update_booking(db: Session, booking_id: int, values: dict) -> dict:
    """Apply ``values`` through the same conditional write as creation.

    The booking being edited is left out of the occupancy count so an
    unchanged assignment never trips the gate.
    """
    booking = _get_booking(db, booking_id)
    old = row_dict(booking)
    merged = {**old, **{key: value for key, value in values.items() if value is not None}}
    _check_statuses(merged['payment_status'], merged['status'])
    _check_dates(merged['start_date'], merged['end_date'])
    _require_user_and_room(db, merged['user_id'], merged['room_id'])

    target_room_id = int(merged['room_id'])
    statement = (
        update(Booking)
        .where(Booking.id == booking.id)
        .values(
            user_id=int(merged['user_id']),
            room_id=target_room_id,
            start_date=merged['start_date'],
            end_date=merged['end_date'],
            payment_status=merged['payment_status'],
            status=merged['status'],
            updated_at=default_time_provider.utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if is_occupying(merged['status']):
        capacity = select(Room.capacity).where(Room.id == target_room_id).scalar_subquery()
        statement = statement.where(_occupancy(target_room_id, exclude_booking_id=booking.id) < capacity)

    result = db.execute(statement)
    if result.rowcount == 0:
        db.rollback()
        logger.info('booking_capacity_rejected room_id=%s booking_id=%s', target_room_id, booking_id)
        raise RoomFullError(ROOM_FULL_MESSAGE)

    db.expire(booking)
    record_change(db, 'bookings', UPDATE, new=row_dict(booking), old=old)
    sync_room_availability(db, target_room_id)
    if int(old['room_id']) != target_room_id:
        sync_room_availability(db, old['room_id'])
    db.commit()
    logger.info('booking_updated booking_id=%s room_id=%s', booking_id, target_room_id)
    return serialize_booking(_load_joined(db, booking.id))


def delete_booking(db: Session, booking_id: int, *, confirm: bool) -> None:
    require_confirmation(confirm, 'room assignment')
    booking = _get_booking(db, booking_id)
    room_id = booking.room_id
    db.delete(booking)
    db.flush()
    sync_room_availability(db, room_id)
    db.commit()
    logger.info('booking_deleted booking_id=%s room_id=%s', booking_id, room_id)


def fetch_bookings(db: Session) -> list[dict]:
    rows = (
        db.query(Booking)
        .options(joinedload(Booking.user), joinedload(Booking.room))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
    return [serialize_booking(row) for row in rows]


def list_bookings(db: Session, search: str = '') -> dict:
    return list_response(fetch_bookings(db), search, BOOKING_SEARCH_FIELDS)


def bookings_for_user(db: Session, user_id: int) -> list[dict]:
    rows = (
        db.query(Booking)
        .options(joinedload(Booking.room), joinedload(Booking.user))
        .filter(Booking.user_id == int(user_id))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
    return [serialize_booking(row) for row in rows]


def active_booking(db: Session, user_id: int) -> dict | None:
    """Most recent booking of the student that still holds a bed."""
    booking = (
        db.query(Booking)
        .options(joinedload(Booking.room), joinedload(Booking.user))
        .filter(Booking.user_id == int(user_id), Booking.status.in_(OCCUPYING_STATUSES))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .first()
    )
    if booking is None:
        return None
    payload = serialize_booking(booking)
    payload['room'] = {
        **payload['room'],
        'price_per_month': booking.room.price_per_month,
        'amenities': list(booking.room.amenities or []),
    }
    return payload


def roommates(db: Session, user_id: int, room_id: int) -> list[dict]:
    rows = (
        db.query(User)
        .join(Booking, Booking.user_id == User.id)
        .filter(
            Booking.room_id == int(room_id),
            Booking.status.in_(OCCUPYING_STATUSES),
            User.id != int(user_id),
        )
        .order_by(User.full_name.asc())
        .distinct()
        .all()
    )
    return [{'id': row.id, 'full_name': row.full_name, 'email': row.email} for row in rows]
