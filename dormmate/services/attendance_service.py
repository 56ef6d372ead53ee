from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import date, datetime, timedelta
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from dormmate.core.errors import NotFoundError
from dormmate.core.search import list_response
from dormmate.core.time_provider import TimeProvider, default_time_provider
from dormmate.models import Attendance, User
from dormmate.realtime.feed import UPDATE, ChangeEvent, ChangeFeed, Subscription, change_feed
from dormmate.services.stats_service import attendance_stats


logger = logging.getLogger(__name__)

ATTENDANCE_SEARCH_FIELDS = ('user.full_name', 'user.email', 'date')
PERIODS = ('today', 'week', 'all')
STATUS_NOT_STARTED = 'Not Started'
STATUS_CHECKED_IN = 'Checked In'
STATUS_COMPLETED = 'Completed'
RECENT_CHECKOUT_WINDOW = timedelta(hours=1)


class SafeConflictError(ValueError):
    pass


def format_duration(check_in: datetime | None, check_out: datetime | None) -> str | None:
    if not check_in or not check_out:
        return None
    minutes_total = max(0, int((check_out - check_in).total_seconds() // 60))
    hours, minutes = divmod(minutes_total, 60)
    return f'{hours}h {minutes}m'


def attendance_status(check_in: datetime | None, check_out: datetime | None) -> str:
    if not check_in:
        return STATUS_NOT_STARTED
    if not check_out:
        return STATUS_CHECKED_IN
    return STATUS_COMPLETED


def format_clock(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.strftime('%I:%M %p').lstrip('0')


def serialize_attendance(record: Attendance) -> dict:
    user = record.user
    return {
        'id': record.id,
        'user_id': record.user_id,
        'date': record.date.isoformat(),
        'check_in': record.check_in,
        'check_out': record.check_out,
        'duration': format_duration(record.check_in, record.check_out),
        'status': attendance_status(record.check_in, record.check_out),
        'user': {'id': user.id, 'full_name': user.full_name, 'email': user.email} if user else None,
    }


def _period_start(period: str, today: date) -> date | None:
    if period == 'today':
        return today
    if period == 'week':
        return today - timedelta(days=7)
    if period == 'all':
        return None
    raise ValueError(f"Unknown period: {period}. Must be one of: {', '.join(PERIODS)}")


def fetch_attendance(
    db: Session,
    period: str = 'today',
    *,
    time_provider: TimeProvider = default_time_provider,
) -> list[dict]:
    start = _period_start(period, time_provider.today())
    query = db.query(Attendance).options(joinedload(Attendance.user))
    if start is not None:
        query = query.filter(Attendance.date >= start)
    rows = query.order_by(Attendance.date.desc(), Attendance.id.desc()).all()
    return [serialize_attendance(row) for row in rows]


def recent_checkouts(rows: list[dict], now: datetime) -> list[dict]:
    """Records checked out within the last hour, newest first."""
    since = now - RECENT_CHECKOUT_WINDOW
    recent = [row for row in rows if row.get('check_out') and row['check_out'] >= since]
    recent.sort(key=lambda row: row['check_out'], reverse=True)
    return [
        {
            'id': row['id'],
            'student': (row.get('user') or {}).get('full_name') or 'Unknown',
            'time': format_clock(row['check_out']),
            'type': 'checkout',
        }
        for row in recent
    ]


def list_attendance(
    db: Session,
    period: str = 'today',
    search: str = '',
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    rows = fetch_attendance(db, period, time_provider=time_provider)
    payload = list_response(rows, search, ATTENDANCE_SEARCH_FIELDS)
    payload['period'] = period
    payload['stats'] = attendance_stats(rows, time_provider.today())
    payload['notifications'] = recent_checkouts(rows, time_provider.naive_now())
    return payload


def todays_record(db: Session, user_id: int, *, time_provider: TimeProvider = default_time_provider) -> Attendance | None:
    return (
        db.query(Attendance)
        .filter(Attendance.user_id == int(user_id), Attendance.date == time_provider.today())
        .first()
    )


def todays_status(db: Session, user_id: int, *, time_provider: TimeProvider = default_time_provider) -> dict:
    record = todays_record(db, user_id, time_provider=time_provider)
    check_in = record.check_in if record else None
    check_out = record.check_out if record else None
    return {
        'date': time_provider.today().isoformat(),
        'check_in': check_in,
        'check_out': check_out,
        'status': attendance_status(check_in, check_out),
        'is_checked_in': bool(check_in and not check_out),
    }


def _stamp_today(db: Session, user_id: int, field: str, time_provider: TimeProvider) -> bool:
    """Set ``field`` on today's row to now, creating the row when missing.

    Returns True when today's row already existed.
    """
    if db.get(User, int(user_id)) is None:
        raise NotFoundError('User not found')
    now = time_provider.naive_now()
    record = todays_record(db, user_id, time_provider=time_provider)
    existed = record is not None
    if record is None:
        db.add(Attendance(user_id=int(user_id), date=time_provider.today(), **{field: now}))
    else:
        setattr(record, field, now)
    try:
        db.commit()
    except IntegrityError as exc:
        # A parallel request created today's row first.
        db.rollback()
        record = todays_record(db, user_id, time_provider=time_provider)
        if record is None:
            raise SafeConflictError(f'Could not record {field.replace("_", "-")}') from exc
        setattr(record, field, now)
        db.commit()
        existed = True
    return existed


def check_in(db: Session, user_id: int, *, time_provider: TimeProvider = default_time_provider) -> dict:
    """Record today's check-in. Repeating it updates the check-in time."""
    existed = _stamp_today(db, user_id, 'check_in', time_provider)
    logger.info('attendance_check_in user_id=%s repeat=%s', user_id, existed)
    return {**todays_status(db, user_id, time_provider=time_provider), 'updated': existed}


def check_out(db: Session, user_id: int, *, time_provider: TimeProvider = default_time_provider) -> dict:
    """Record today's check-out, creating today's row if there was no check-in."""
    existed = _stamp_today(db, user_id, 'check_out', time_provider)
    logger.info('attendance_check_out user_id=%s had_row=%s', user_id, existed)
    return todays_status(db, user_id, time_provider=time_provider)


class CheckoutNotifier:
    """Collects "student checked out" notices from attendance change events.

    Only UPDATE events whose old row had no check-out and whose new row has
    one produce a notice, so repeated check-outs do not notify twice.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        feed: ChangeFeed = change_feed,
        max_items: int = 50,
    ):
        self._session_factory = session_factory
        self._feed = feed
        self._items: deque[dict] = deque(maxlen=max_items)
        self._lock = threading.Lock()
        self._subscription: Subscription | None = None

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._feed.subscribe('attendance', self.handle)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _student_name(self, user_id) -> str:
        db = self._session_factory()
        try:
            user = db.get(User, int(user_id))
            return (user.full_name or user.email) if user else 'Unknown'
        finally:
            db.close()

    def handle(self, event: ChangeEvent) -> None:
        if event.event_type != UPDATE:
            return
        if not event.new.get('check_out') or event.old.get('check_out'):
            return
        checked_out_at = event.new['check_out']
        name = self._student_name(event.new.get('user_id'))
        clock = format_clock(checked_out_at) if isinstance(checked_out_at, datetime) else str(checked_out_at)
        notice = {
            'id': event.new.get('id'),
            'student': name,
            'time': clock,
            'type': 'checkout',
            'title': 'Student Checked Out',
            'description': f'{name} has checked out at {clock}',
        }
        with self._lock:
            self._items.appendleft(notice)
        logger.info('attendance_checkout_notice attendance_id=%s', notice['id'])

    def notifications(self) -> list[dict]:
        with self._lock:
            return list(self._items)

    def dismiss(self, notification_id: int) -> bool:
        with self._lock:
            kept = [item for item in self._items if item['id'] != notification_id]
            removed = len(kept) != len(self._items)
            self._items.clear()
            self._items.extend(kept)
        return removed
