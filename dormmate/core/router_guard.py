from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException, Request

from dormmate.core.confirm import ConfirmationRequiredError
from dormmate.core.errors import NotFoundError
from dormmate.services.auth_service import AuthAuthorizationError, validate_session_token


SESSION_COOKIE = 'auth_session'


def resolve_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def optional_auth_user(request: Request) -> dict | None:
    return validate_session_token(resolve_token(request))


def require_auth_user(request: Request) -> dict:
    session = optional_auth_user(request)
    if not session:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user_id = int(session.get('user_id') or 0)
    if user_id <= 0:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return {
        'user_id': user_id,
        'email': session.get('email') or '',
        'role': str(session.get('role') or '').strip().lower(),
    }


def require_role(user: dict, allowed_roles: set[str] | Iterable[str]) -> None:
    normalized = {str(role).strip().lower() for role in allowed_roles}
    if str(user.get('role') or '').strip().lower() not in normalized:
        raise HTTPException(status_code=403, detail='Forbidden')


def http_error(exc: ValueError) -> HTTPException:
    """Map a service-layer error to its HTTP status."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConfirmationRequiredError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, AuthAuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
