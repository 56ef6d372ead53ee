from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.schemas import RoomRequest
from dormmate.services import room_service


router = APIRouter(prefix='/api/rooms', tags=['Rooms'])

ADMIN_ONLY = {'admin'}


@router.get('')
def rooms_list(
    search: str = Query(default=''),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    return room_service.list_rooms(db, search)


@router.get('/amenities')
def rooms_amenities():
    return [{'id': key, 'label': label} for key, label in room_service.AMENITY_LABELS.items()]


@router.post('', status_code=201)
def rooms_create(payload: RoomRequest, user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, ADMIN_ONLY)
    try:
        return room_service.create_room(db, payload.model_dump())
    except ValueError as exc:
        raise http_error(exc) from exc


@router.put('/{room_id}')
def rooms_update(
    room_id: int,
    payload: RoomRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    try:
        return room_service.update_room(db, room_id, payload.model_dump())
    except ValueError as exc:
        raise http_error(exc) from exc


@router.delete('/{room_id}')
def rooms_delete(
    room_id: int,
    confirm: bool = Query(default=False),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, ADMIN_ONLY)
    try:
        room_service.delete_room(db, room_id, confirm=confirm)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'ok': True, 'deleted_id': room_id}
