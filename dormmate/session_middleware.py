from urllib.parse import quote

from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from dormmate.core.router_guard import SESSION_COOKIE
from dormmate.models import Role
from dormmate.services.auth_service import dashboard_path, validate_session_token


ROLE_PAGES = {f'/{role.value}': role.value for role in Role}


def _page_role(path: str) -> str | None:
    """Role owning ``path`` when it is a dashboard page, e.g. ``/admin``."""
    prefix = '/' + path.strip('/').split('/', 1)[0]
    role = ROLE_PAGES.get(prefix)
    if role is None:
        return None
    # Public hostel pages live under the hostel prefix.
    if path.rstrip('/') == '/hostel/register':
        return None
    return role


class SessionAuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        page_role = _page_role(path)
        if page_role is None:
            return await call_next(request)

        session = validate_session_token(request.cookies.get(SESSION_COOKIE))
        if not session:
            next_url = quote(path, safe='/')
            return RedirectResponse(url=f'/auth?next={next_url}', status_code=303)

        if session.get('role') != page_role:
            return RedirectResponse(url=dashboard_path(session.get('role')) or '/', status_code=303)

        request.state.auth_user = session
        return await call_next(request)
