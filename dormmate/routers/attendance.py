from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.services import attendance_service
from dormmate.services.attendance_service import SafeConflictError


router = APIRouter(prefix='/api/attendance', tags=['Attendance'])

MONITOR_ROLES = {'admin', 'security'}


def get_checkout_notifier(request: Request):
    return getattr(request.app.state, 'checkout_notifier', None)


@router.get('')
def attendance_list(
    period: str = Query(default='today'),
    search: str = Query(default=''),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, MONITOR_ROLES)
    try:
        return attendance_service.list_attendance(db, period, search)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.get('/me')
def attendance_me(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'student'})
    return attendance_service.todays_status(db, user['user_id'])


@router.post('/check-in')
def attendance_check_in(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'student'})
    try:
        return attendance_service.check_in(db, user['user_id'])
    except SafeConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc


@router.post('/check-out')
def attendance_check_out(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'student'})
    try:
        return attendance_service.check_out(db, user['user_id'])
    except ValueError as exc:
        raise http_error(exc) from exc


@router.get('/notifications')
def attendance_notifications(user: dict = Depends(require_auth_user), notifier=Depends(get_checkout_notifier)):
    require_role(user, MONITOR_ROLES)
    return notifier.notifications() if notifier is not None else []


@router.delete('/notifications/{notification_id}')
def attendance_dismiss_notification(
    notification_id: int,
    user: dict = Depends(require_auth_user),
    notifier=Depends(get_checkout_notifier),
):
    require_role(user, MONITOR_ROLES)
    if notifier is None or not notifier.dismiss(notification_id):
        raise HTTPException(status_code=404, detail='Notification not found')
    return {'ok': True}
