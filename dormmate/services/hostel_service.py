from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dormmate.config import settings
from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.models import AuthAccount, Hostel, Role, User
from dormmate.services import storage_service
from dormmate.services.auth_service import create_account
from dormmate.utils.hostel import LocationTier, get_commission_rate, location_tier_name


logger = logging.getLogger(__name__)

HOSTEL_SEARCH_FIELDS = ('name', 'city', 'description')
PLACEHOLDER_PHOTO = '/placeholder.svg'
TIER_VALUES = tuple(item.value for item in LocationTier)


def serialize_hostel(hostel: Hostel) -> dict:
    return {
        'id': hostel.id,
        'name': hostel.name,
        'address': hostel.address,
        'city': hostel.city,
        'email': hostel.email,
        'phone': hostel.phone,
        'description': hostel.description,
        'size': hostel.size,
        'location_tier': hostel.location_tier,
        'location_tier_name': location_tier_name(hostel.location_tier),
        'commission_rate': hostel.commission_rate,
        'price_range_min': hostel.price_range_min,
        'price_range_max': hostel.price_range_max,
        'amenities': list(hostel.amenities or []),
        'photos': list(hostel.photos or []),
        'is_verified': bool(hostel.is_verified),
        'is_approved': bool(hostel.is_approved),
        'created_at': hostel.created_at,
    }


def initial_password(phone: str) -> str:
    return re.sub(r'[^0-9]', '', phone or '')


def register_hostel(db: Session, values: dict) -> dict:
    """Create the hostel owner's account and the pending hostel listing.

    The owner signs in with the contact email and the digits of the phone
    number; the credentials are only returned here.
    """
    password = initial_password(values['phone'])
    user = create_account(
        db,
        email=values['email'],
        password=password,
        full_name=values['name'],
        role=Role.HOSTEL.value,
    )
    hostel = Hostel(
        id=user.id,
        name=values['name'].strip(),
        address=values['address'].strip(),
        city=values['city'].strip(),
        email=user.email,
        phone=values['phone'].strip(),
        description=(values.get('description') or '').strip(),
        size=values['size'],
        location_tier=values['location'],
        commission_rate=get_commission_rate(values['size'], values['location']),
        price_range_min=float(values.get('price_range_min') or 0),
        price_range_max=float(values.get('price_range_max') or 0),
        amenities=list(values.get('amenities') or []),
        photos=[PLACEHOLDER_PHOTO],
        is_verified=False,
        is_approved=False,
    )
    db.add(hostel)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        _drop_account(db, user.id)
        raise ValueError('Hostel could not be registered') from exc
    db.refresh(hostel)
    logger.info('hostel_registered hostel_id=%s tier=%s size=%s', hostel.id, hostel.location_tier, hostel.size)
    return {
        'hostel': serialize_hostel(hostel),
        'credentials': {'email': user.email, 'password': password},
    }


def _drop_account(db: Session, user_id: int) -> None:
    for model in (User, AuthAccount):
        row = db.get(model, user_id)
        if row is not None:
            db.delete(row)
    db.commit()


def get_hostel(db: Session, hostel_id: int) -> Hostel:
    hostel = db.get(Hostel, int(hostel_id))
    if hostel is None:
        raise NotFoundError('Hostel not found')
    return hostel


def _parse_price_range(price_range: str | None) -> tuple[float, float] | None:
    raw = (price_range or '').strip()
    if not raw or raw == 'all':
        return None
    low, sep, high = raw.partition('-')
    try:
        if not sep:
            raise ValueError(raw)
        return float(low), float(high)
    except ValueError as exc:
        raise ValueError(f'Invalid price range: {raw}') from exc


def list_public_hostels(
    db: Session,
    *,
    search: str = '',
    price_range: str | None = None,
    tier: str | None = None,
) -> dict:
    """Approved hostels; a price range matches any overlapping listing."""
    query = db.query(Hostel).filter(Hostel.is_approved.is_(True))
    if tier and tier != 'all':
        if tier not in TIER_VALUES:
            raise ValueError(f'Invalid location tier: {tier}')
        query = query.filter(Hostel.location_tier == tier)
    bounds = _parse_price_range(price_range)
    if bounds is not None:
        low, high = bounds
        query = query.filter(Hostel.price_range_min <= high, Hostel.price_range_max >= low)
    rows = [serialize_hostel(row) for row in query.order_by(Hostel.name.asc()).all()]
    return list_response(rows, search, HOSTEL_SEARCH_FIELDS)


def public_hostel(db: Session, hostel_id: int) -> dict:
    hostel = get_hostel(db, hostel_id)
    if not hostel.is_approved:
        raise NotFoundError('Hostel not found')
    return serialize_hostel(hostel)


def list_for_admin(db: Session) -> list[dict]:
    rows = db.query(Hostel).order_by(Hostel.created_at.desc(), Hostel.id.desc()).all()
    return [serialize_hostel(row) for row in rows]


def pending_count(db: Session) -> int:
    return db.query(Hostel).filter(Hostel.is_approved.isnot(True)).count()


def set_approval(db: Session, hostel_id: int, approve: bool) -> dict:
    hostel = get_hostel(db, hostel_id)
    hostel.is_approved = bool(approve)
    db.commit()
    db.refresh(hostel)
    logger.info('hostel_approval hostel_id=%s approved=%s', hostel.id, hostel.is_approved)
    return serialize_hostel(hostel)


def add_photos(db: Session, hostel_id: int, files: list[tuple[str, bytes]]) -> dict:
    hostel = get_hostel(db, hostel_id)
    bucket = settings.storage_photo_bucket
    uploaded = [storage_service.upload(bucket, filename, data)['url'] for filename, data in files]
    # JSON columns only track reassignment.
    hostel.photos = [*(hostel.photos or []), *uploaded]
    db.commit()
    db.refresh(hostel)
    logger.info('hostel_photos_added hostel_id=%s count=%s', hostel.id, len(uploaded))
    return serialize_hostel(hostel)


def remove_photo(db: Session, hostel_id: int, url: str) -> dict:
    """Drop ``url`` from the hostel's photo list.

    The stored object is deleted as well only when
    ``storage_delete_on_photo_remove`` is enabled.
    """
    hostel = get_hostel(db, hostel_id)
    photos = list(hostel.photos or [])
    if url not in photos:
        raise NotFoundError('Photo not found')
    hostel.photos = [photo for photo in photos if photo != url]
    db.commit()
    db.refresh(hostel)
    if settings.storage_delete_on_photo_remove:
        bucket = settings.storage_photo_bucket
        name = storage_service.object_name_from_url(bucket, url)
        if name:
            storage_service.remove(bucket, name)
    logger.info('hostel_photo_removed hostel_id=%s', hostel.id)
    return serialize_hostel(hostel)
