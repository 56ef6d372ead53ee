from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.schemas import MessMenuRequest
from dormmate.services import mess_menu_service


router = APIRouter(prefix='/api/mess-menu', tags=['Mess Menu'])

MANAGE_ROLES = {'admin', 'mess'}


@router.get('')
def menu_list(
    search: str = Query(default=''),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, MANAGE_ROLES)
    return mess_menu_service.list_menu(db, search)


@router.get('/today')
def menu_today(_: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    return mess_menu_service.todays_menu(db)


@router.get('/week')
def menu_week(_: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    return mess_menu_service.weekly_menu(db)


@router.post('', status_code=201)
def menu_create(payload: MessMenuRequest, user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, MANAGE_ROLES)
    return mess_menu_service.create_menu_entry(db, **payload.model_dump())


@router.put('/{menu_id}')
def menu_update(
    menu_id: int,
    payload: MessMenuRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, MANAGE_ROLES)
    try:
        return mess_menu_service.update_menu_entry(db, menu_id, **payload.model_dump())
    except ValueError as exc:
        raise http_error(exc) from exc


@router.delete('/{menu_id}')
def menu_delete(
    menu_id: int,
    confirm: bool = Query(default=False),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, MANAGE_ROLES)
    try:
        mess_menu_service.delete_menu_entry(db, menu_id, confirm=confirm)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'ok': True, 'deleted_id': menu_id}
