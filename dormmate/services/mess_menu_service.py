from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from dormmate.core.confirm import require_confirmation
from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.core.time_provider import TimeProvider, default_time_provider
from dormmate.models import MessMenu
from dormmate.utils.mess import (
    DAYS_OF_WEEK,
    day_index,
    is_valid_booking_time,
    meal_index,
    normalize_day,
    normalize_meal_type,
)


logger = logging.getLogger(__name__)

MENU_SEARCH_FIELDS = ('day_of_week', 'meal_type')


def serialize_menu(row: MessMenu) -> dict:
    return {
        'id': row.id,
        'day_of_week': row.day_of_week,
        'meal_type': row.meal_type,
        'items': list(row.items or []),
        'created_at': row.created_at,
        'updated_at': row.updated_at,
    }


def menu_sort_key(row: dict) -> tuple[int, int, int]:
    """Monday first, then meals in their ``MealType`` order."""
    return (day_index(row.get('day_of_week', '')), meal_index(row.get('meal_type', '')), int(row.get('id') or 0))


def fetch_menu(db: Session, *, day: str | None = None) -> list[dict]:
    query = db.query(MessMenu)
    if day:
        query = query.filter(MessMenu.day_of_week == normalize_day(day))
    return sorted((serialize_menu(row) for row in query.all()), key=menu_sort_key)


def list_menu(db: Session, search: str = '') -> dict:
    return list_response(fetch_menu(db), search, MENU_SEARCH_FIELDS)


def todays_menu(db: Session, *, time_provider: TimeProvider = default_time_provider) -> dict:
    """Today's meals, each flagged with whether it can still be booked now."""
    day = time_provider.weekday_name()
    now = time_provider.naive_now()
    meals = [
        {**meal, 'booking_open': is_valid_booking_time(meal['meal_type'], now, now)}
        for meal in fetch_menu(db, day=day)
    ]
    return {'day_of_week': day, 'meals': meals}


def weekly_menu(db: Session) -> list[dict]:
    grouped = {day: [] for day in DAYS_OF_WEEK}
    for row in fetch_menu(db):
        grouped.setdefault(row['day_of_week'], []).append(row)
    return [{'day_of_week': day, 'meals': meals} for day, meals in grouped.items()]


def _get_entry(db: Session, menu_id: int) -> MessMenu:
    row = db.get(MessMenu, int(menu_id))
    if row is None:
        raise NotFoundError('Menu item not found')
    return row


def create_menu_entry(db: Session, *, day_of_week: str, meal_type: str, items: list[str]) -> dict:
    row = MessMenu(day_of_week=normalize_day(day_of_week), meal_type=normalize_meal_type(meal_type), items=list(items))
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info('mess_menu_created id=%s day=%s meal=%s', row.id, row.day_of_week, row.meal_type)
    return serialize_menu(row)


def update_menu_entry(db: Session, menu_id: int, *, day_of_week: str, meal_type: str, items: list[str]) -> dict:
    row = _get_entry(db, menu_id)
    row.day_of_week = normalize_day(day_of_week)
    row.meal_type = normalize_meal_type(meal_type)
    row.items = list(items)
    db.commit()
    db.refresh(row)
    logger.info('mess_menu_updated id=%s', row.id)
    return serialize_menu(row)


def delete_menu_entry(db: Session, menu_id: int, *, confirm: bool) -> None:
    require_confirmation(confirm, 'menu item')
    row = _get_entry(db, menu_id)
    db.delete(row)
    db.commit()
    logger.info('mess_menu_deleted id=%s', menu_id)
