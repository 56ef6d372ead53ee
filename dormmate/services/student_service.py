from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dormmate.core.confirm import require_confirmation
from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.models import AuthAccount, Role, User
from dormmate.services.auth_service import create_account, normalize_email
from dormmate.services.booking_service import sync_room_availability


logger = logging.getLogger(__name__)

STUDENT_SEARCH_FIELDS = ('full_name', 'email')


def serialize_student(user: User) -> dict:
    return {
        'id': user.id,
        'full_name': user.full_name,
        'email': user.email,
        'role': user.role,
        'created_at': user.created_at,
    }


def fetch_students(db: Session) -> list[dict]:
    rows = (
        db.query(User)
        .filter(User.role == Role.STUDENT.value)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return [serialize_student(row) for row in rows]


def list_students(db: Session, search: str = '') -> dict:
    return list_response(fetch_students(db), search, STUDENT_SEARCH_FIELDS)


def _get_student(db: Session, student_id: int) -> User:
    user = db.get(User, int(student_id))
    if user is None or user.role != Role.STUDENT.value:
        raise NotFoundError('Student not found')
    return user


def create_student(db: Session, *, full_name: str, email: str, password: str) -> dict:
    user = create_account(db, email=email, password=password, full_name=full_name, role=Role.STUDENT.value)
    logger.info('student_created user_id=%s', user.id)
    return serialize_student(user)


def update_student(db: Session, student_id: int, *, full_name: str, email: str) -> dict:
    user = _get_student(db, student_id)
    clean_email = normalize_email(email)
    user.full_name = full_name.strip()
    if clean_email != user.email:
        user.email = clean_email
        account = db.get(AuthAccount, user.id)
        if account is not None:
            account.email = clean_email
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError('Email is already in use') from exc
    db.refresh(user)
    logger.info('student_updated user_id=%s', user.id)
    return serialize_student(user)


def delete_student(db: Session, student_id: int, *, confirm: bool) -> None:
    """Remove the student profile, its bookings and attendance, and its sign-in account."""
    require_confirmation(confirm, 'student')
    user = _get_student(db, student_id)
    room_ids = {booking.room_id for booking in user.bookings}
    account = db.get(AuthAccount, user.id)
    db.delete(user)
    if account is not None:
        db.delete(account)
    db.flush()

    for room_id in room_ids:
        sync_room_availability(db, room_id)
    db.commit()
    logger.info('student_deleted user_id=%s', student_id)
