from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from dormmate.core.router_guard import http_error, require_auth_user, require_role
from dormmate.db import get_db
from dormmate.schemas import HostelApprovalRequest, HostelRegisterRequest
from dormmate.services import hostel_service
from dormmate.utils.hostel import get_commission_rate


router = APIRouter(prefix='/api/hostels', tags=['Hostels'])
admin_router = APIRouter(prefix='/api/admin/hostels', tags=['Hostel Approvals'])


@router.post('/register', status_code=201)
def hostels_register(payload: HostelRegisterRequest, db: Session = Depends(get_db)):
    try:
        return hostel_service.register_hostel(db, payload.model_dump())
    except ValueError as exc:
        raise http_error(exc) from exc


@router.get('/commission-rate')
def hostels_commission_rate(size: str = Query(...), location: str = Query(...)):
    try:
        return {'size': size, 'location': location, 'commission_rate': get_commission_rate(size, location)}
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get('')
def hostels_list(
    search: str = Query(default=''),
    price_range: str = Query(default='all'),
    tier: str = Query(default='all'),
    db: Session = Depends(get_db),
):
    try:
        return hostel_service.list_public_hostels(db, search=search, price_range=price_range, tier=tier)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.get('/me')
def hostels_me(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'hostel'})
    try:
        return hostel_service.serialize_hostel(hostel_service.get_hostel(db, user['user_id']))
    except ValueError as exc:
        raise http_error(exc) from exc


@router.post('/me/photos')
async def hostels_upload_photos(
    files: list[UploadFile] = File(...),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, {'hostel'})
    uploads = [(upload.filename or '', await upload.read()) for upload in files]
    try:
        return hostel_service.add_photos(db, user['user_id'], uploads)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.delete('/me/photos')
def hostels_remove_photo(
    url: str = Query(...),
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, {'hostel'})
    try:
        return hostel_service.remove_photo(db, user['user_id'], url)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.get('/{hostel_id}')
def hostels_detail(hostel_id: int, db: Session = Depends(get_db)):
    try:
        return hostel_service.public_hostel(db, hostel_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@admin_router.get('')
def admin_hostels_list(user: dict = Depends(require_auth_user), db: Session = Depends(get_db)):
    require_role(user, {'admin'})
    return hostel_service.list_for_admin(db)


@admin_router.post('/{hostel_id}/approval')
def admin_hostels_approval(
    hostel_id: int,
    payload: HostelApprovalRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
):
    require_role(user, {'admin'})
    try:
        return hostel_service.set_approval(db, hostel_id, payload.approve)
    except ValueError as exc:
        raise http_error(exc) from exc
