from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.schemas import BookingRequest
from dormmate.services import booking_service
from dormmate.services.booking_service import RoomFullError


router = APIRouter(prefix='/api/bookings', tags=['Room Assignments'])

ADMIN_ONLY = {'admin'}


@router.get('')
def bookings_list(
    search: str = Query(default=''),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    return booking_service.list_bookings(db, search)


@router.get('/me')
def bookings_mine(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'student'})
    return {
        'active': booking_service.active_booking(db, user['user_id']),
        'bookings': booking_service.bookings_for_user(db, user['user_id']),
    }


@router.post('', status_code=201)
def bookings_create(payload: BookingRequest, user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, ADMIN_ONLY)
    try:
        return booking_service.create_booking(db, **payload.model_dump())
    except RoomFullError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc


@router.put('/{booking_id}')
def bookings_update(
    booking_id: int,
    payload: BookingRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    try:
        return booking_service.update_booking(db, booking_id, payload.model_dump())
    except RoomFullError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc


@router.delete('/{booking_id}')
def bookings_delete(
    booking_id: int,
    confirm: bool = Query(default=False),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    try:
        booking_service.delete_booking(db, booking_id, confirm=confirm)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'ok': True, 'deleted_id': booking_id}
