from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.schemas import StudentCreateRequest, StudentUpdateRequest
from dormmate.services import student_service


router = APIRouter(prefix='/api/students', tags=['Students'])

READ_ROLES = {'admin', 'security'}
WRITE_ROLES = {'admin'}


@router.get('')
def students_list(
    search: str = Query(default=''),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, READ_ROLES)
    return student_service.list_students(db, search)


@router.post('', status_code=201)
def students_create(
    payload: StudentCreateRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, WRITE_ROLES)
    try:
        return student_service.create_student(
            db, full_name=payload.full_name, email=payload.email, password=payload.password
        )
    except ValueError as exc:
        raise http_error(exc) from exc


@router.put('/{student_id}')
def students_update(
    student_id: int,
    payload: StudentUpdateRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, WRITE_ROLES)
    try:
        return student_service.update_student(db, student_id, full_name=payload.full_name, email=payload.email)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.delete('/{student_id}')
def students_delete(
    student_id: int,
    confirm: bool = Query(default=False),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, WRITE_ROLES)
    try:
        student_service.delete_student(db, student_id, confirm=confirm)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'ok': True, 'deleted_id': student_id}
