from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dormmate.config import settings
from dormmate.core.router_guard import http_error, optional_auth_user
from dormmate.db import get_db
from dormmate.models import Role
from dormmate.services import dashboard_service, hostel_service
from dormmate.services.auth_service import resolve_landing
from dormmate.utils.hostel import HostelSize, LocationTier, get_commission_rate, location_tier_name


router = APIRouter(tags=['Pages'])


def _page(role: str, dashboard: dict) -> dict:
    return {'view': 'dashboard', 'layout': dashboard_service.layout_for(role), 'dashboard': dashboard}


def _page_user(request: Request) -> dict:
    return request.state.auth_user


@router.get('/')
def landing_page(request: Request, db: Session = Depends(get_db)):
    landing = resolve_landing(db, optional_auth_user(request))
    if landing['view'] == 'dashboard':
        return RedirectResponse(url=landing['redirect'], status_code=303)
    return {**landing, 'app_name': settings.app_name}


@router.get('/auth')
def auth_page(request: Request, next: str = Query(default=''), db: Session = Depends(get_db)):
    landing = resolve_landing(db, optional_auth_user(request))
    if landing['view'] == 'dashboard':
        return RedirectResponse(url=landing['redirect'], status_code=303)
    return {'view': 'auth', 'tabs': ['login', 'signup'], 'next': next or None}


@router.get('/admin')
def admin_page(db: Session = Depends(get_db)):
    return _page(Role.ADMIN.value, dashboard_service.admin_dashboard(db))


@router.get('/student')
def student_page(request: Request, db: Session = Depends(get_db)):
    try:
        dashboard = dashboard_service.student_dashboard(db, _page_user(request)['user_id'])
    except ValueError as exc:
        raise http_error(exc) from exc
    return _page(Role.STUDENT.value, dashboard)


@router.get('/security')
def security_page(request: Request, db: Session = Depends(get_db)):
    notifier = getattr(request.app.state, 'checkout_notifier', None)
    return _page(Role.SECURITY.value, dashboard_service.security_dashboard(db, notifier=notifier))


@router.get('/mess')
def mess_page(db: Session = Depends(get_db)):
    return _page(Role.MESS.value, dashboard_service.mess_dashboard(db))


@router.get('/hostel')
def hostel_page(request: Request, db: Session = Depends(get_db)):
    try:
        dashboard = dashboard_service.hostel_dashboard(db, _page_user(request)['user_id'])
    except ValueError as exc:
        raise http_error(exc) from exc
    return _page(Role.HOSTEL.value, dashboard)


@router.get('/hostel/register')
def hostel_register_page():
    return {
        'view': 'hostel_register',
        'sizes': [item.value for item in HostelSize],
        'tiers': [{'id': item.value, 'label': location_tier_name(item.value)} for item in LocationTier],
        'commission_rates': {
            size.value: {tier.value: get_commission_rate(size.value, tier.value) for tier in LocationTier}
            for size in HostelSize
        },
    }


@router.get('/hostels')
def hostels_page(
    search: str = Query(default=''),
    price_range: str = Query(default='all'),
    tier: str = Query(default='all'),
    db: Session = Depends(get_db),
):
    try:
        listing = hostel_service.list_public_hostels(db, search=search, price_range=price_range, tier=tier)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'view': 'hostels', 'filters': {'search': search, 'price_range': price_range, 'tier': tier}, **listing}


@router.get('/hostels/{hostel_id}')
def hostel_detail_page(hostel_id: int, db: Session = Depends(get_db)):
    try:
        hostel = hostel_service.public_hostel(db, hostel_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {'view': 'hostel_detail', 'hostel': hostel}
