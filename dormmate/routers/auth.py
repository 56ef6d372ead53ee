from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dormmate.config import settings
from dormmate.core.router_guard import SESSION_COOKIE, http_error, require_auth_user, resolve_token
from dormmate.db import get_db
from dormmate.schemas import LoginRequest, RoleSelectRequest, SignupRequest
from dormmate.services.auth_service import (
    AuthAuthorizationError,
    InvalidCredentialsError,
    RoleAlreadySetError,
    clear_session_token,
    login,
    resolve_landing,
    select_role,
    signup,
)


router = APIRouter(prefix='/auth', tags=['Auth'])


def _session_cookie_response(data: dict, status_code: int = 200):
    response = JSONResponse(
        {
            'ok': True,
            'token': data['token'],
            'user_id': data['user_id'],
            'role': data['role'],
            'next': data['next'],
            'expires_at': data['expires_at'],
        },
        status_code=status_code,
    )
    response.set_cookie(
        key=SESSION_COOKIE,
        value=data['token'],
        httponly=True,
        samesite='lax',
        secure=settings.app_env == 'production',
        max_age=settings.auth_session_expiry_hours * 60 * 60,
    )
    return response


@router.post('/signup', status_code=201)
def auth_signup(payload: SignupRequest, db: Session = Depends(get_db)):
    try:
        return signup(db, email=payload.email, password=payload.password, full_name=payload.full_name, role=payload.role)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.post('/login')
def auth_login(payload: LoginRequest, db: Session = Depends(get_db)):
    try:
        data = login(db, payload.email, payload.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc
    return _session_cookie_response(data)


@router.get('/session')
def auth_session(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    return {**user, 'landing': resolve_landing(db, user)}


@router.post('/role')
def auth_select_role(
    payload: RoleSelectRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    try:
        data = select_role(db, user['user_id'], payload.role)
    except RoleAlreadySetError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except AuthAuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc
    return _session_cookie_response(data)


@router.post('/logout')
def auth_logout(request: Request):
    clear_session_token(resolve_token(request))
    response = JSONResponse({'ok': True})
    response.delete_cookie(SESSION_COOKIE)
    return response
