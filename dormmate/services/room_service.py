from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dormmate.core.confirm import require_confirmation
from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.models import Booking, Room
from dormmate.services.booking_service import sync_room_availability
from dormmate.utils.booking import OCCUPYING_STATUSES


logger = logging.getLogger(__name__)

ROOM_SEARCH_FIELDS = ('room_number', 'floor')

AMENITY_LABELS = {
    'wifi': 'WiFi',
    'ac': 'Air Conditioner',
    'tv': 'Television',
    'fridge': 'Refrigerator',
    'bathroom': 'Attached Bathroom',
    'balcony': 'Balcony',
    'study_desk': 'Study Desk',
}


def serialize_room(room: Room, occupied: int | None = None) -> dict:
    row = {
        'id': room.id,
        'room_number': room.room_number,
        'floor': room.floor,
        'capacity': room.capacity,
        'price_per_month': room.price_per_month,
        'amenities': list(room.amenities or []),
        'is_available': bool(room.is_available),
        'created_at': room.created_at,
        'updated_at': room.updated_at,
    }
    if occupied is not None:
        row['occupied'] = occupied
    return row


def occupancy_by_room(db: Session) -> dict[int, int]:
    rows = (
        db.query(Booking.room_id, func.count(Booking.id))
        .filter(Booking.status.in_(OCCUPYING_STATUSES))
        .group_by(Booking.room_id)
        .all()
    )
    return {int(room_id): int(count) for room_id, count in rows}


def fetch_rooms(db: Session, *, only_available: bool = False) -> list[dict]:
    query = db.query(Room)
    if only_available:
        query = query.filter(Room.is_available.is_(True))
    rooms = query.order_by(Room.room_number.asc()).all()
    occupancy = occupancy_by_room(db)
    return [serialize_room(room, occupancy.get(room.id, 0)) for room in rooms]


def list_rooms(db: Session, search: str = '') -> dict:
    return list_response(fetch_rooms(db), search, ROOM_SEARCH_FIELDS)


def _get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, int(room_id))
    if room is None:
        raise NotFoundError('Room not found')
    return room


def create_room(db: Session, values: dict) -> dict:
    room = Room(**values)
    room.is_available = int(room.capacity or 0) > 0
    db.add(room)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError(f"Room {values.get('room_number')} already exists") from exc
    db.refresh(room)
    logger.info('room_created room_id=%s number=%s', room.id, room.room_number)
    return serialize_room(room, 0)


def update_room(db: Session, room_id: int, values: dict) -> dict:
    """Apply edits, then recompute ``is_available`` from occupancy and capacity."""
    room = _get_room(db, room_id)
    occupied = occupancy_by_room(db).get(room.id, 0)
    if int(values.get('capacity', room.capacity)) < occupied:
        raise ValueError(f'Capacity cannot be lower than current occupancy ({occupied})')
    for key, value in values.items():
        if key != 'is_available':
            setattr(room, key, value)
    sync_room_availability(db, room.id)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError(f"Room {values.get('room_number')} already exists") from exc
    db.refresh(room)
    logger.info('room_updated room_id=%s available=%s', room.id, room.is_available)
    return serialize_room(room, occupied)


def delete_room(db: Session, room_id: int, *, confirm: bool) -> None:
    require_confirmation(confirm, 'room')
    room = _get_room(db, room_id)
    db.delete(room)
    db.commit()
    logger.info('room_deleted room_id=%s', room_id)
