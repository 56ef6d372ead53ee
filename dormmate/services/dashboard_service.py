from __future__ import annotations

from sqlalchemy.orm import Session

from dormmate.core.errors import NotFoundError
from dormmate.core.time_provider import TimeProvider, default_time_provider
from dormmate.models import Booking, Role, User
from dormmate.services import (
    attendance_service,
    booking_service,
    hostel_service,
    mess_menu_service,
    room_service,
    stats_service,
)
from dormmate.services.attendance_service import CheckoutNotifier


COMMON_NAV = (
    {'id': 'dashboard', 'label': 'Dashboard'},
    {'id': 'settings', 'label': 'Settings'},
)

ROLE_NAV = {
    Role.ADMIN.value: (
        {'id': 'students', 'label': 'Students'},
        {'id': 'rooms', 'label': 'Rooms'},
        {'id': 'attendance', 'label': 'Attendance'},
        {'id': 'mess-menu', 'label': 'Mess Menu'},
    ),
    Role.STUDENT.value: (
        {'id': 'room', 'label': 'My Room'},
        {'id': 'mess-menu', 'label': 'Mess Menu'},
        {'id': 'complaints', 'label': 'Complaints'},
    ),
    Role.SECURITY.value: (
        {'id': 'check-in', 'label': 'Check In/Out'},
        {'id': 'logs', 'label': 'Attendance Logs'},
        {'id': 'students', 'label': 'Students'},
    ),
    Role.MESS.value: (
        {'id': 'daily-menu', 'label': 'Daily Menu'},
        {'id': 'weekly-plan', 'label': 'Weekly Plan'},
        {'id': 'inventory', 'label': 'Inventory'},
    ),
    Role.HOSTEL.value: (
        {'id': 'overview', 'label': 'Overview'},
        {'id': 'rooms', 'label': 'Rooms'},
        {'id': 'bookings', 'label': 'Bookings'},
        {'id': 'photos', 'label': 'Photos'},
    ),
}

ROLE_TITLES = {
    Role.ADMIN.value: 'Admin Dashboard',
    Role.STUDENT.value: 'Student Dashboard',
    Role.SECURITY.value: 'Security Dashboard',
    Role.MESS.value: 'Mess Dashboard',
    Role.HOSTEL.value: 'Hostel Dashboard',
}


def layout_for(role: str) -> dict:
    if role not in ROLE_NAV:
        raise ValueError(f'Unknown role: {role}')
    return {
        'role': role,
        'title': ROLE_TITLES[role],
        'theme_class': f'theme-{role}',
        'nav': [dict(item) for item in (*COMMON_NAV, *ROLE_NAV[role])],
    }


def admin_dashboard(db: Session, *, time_provider: TimeProvider = default_time_provider) -> dict:
    rooms = room_service.fetch_rooms(db)
    bookings = db.query(Booking.room_id, Booking.status).all()
    attendance_today = attendance_service.fetch_attendance(db, 'today', time_provider=time_provider)
    today_stats = stats_service.attendance_stats(attendance_today, time_provider.today())
    total_students = db.query(User).filter(User.role == Role.STUDENT.value).count()
    return {
        'stats': {
            'total_students': total_students,
            'occupancy_rate': stats_service.occupancy_rate(
                rooms, [{'room_id': room_id, 'status': status} for room_id, status in bookings]
            ),
            'available_rooms': stats_service.available_rooms(rooms),
            'total_rooms': len(rooms),
            'todays_check_ins': today_stats['checked_in'],
            'pending_hostels': hostel_service.pending_count(db),
        },
        'views': ['students', 'rooms', 'room-assignments', 'attendance', 'mess-menu', 'hostel-approvals'],
    }


def student_dashboard(db: Session, user_id: int, *, time_provider: TimeProvider = default_time_provider) -> dict:
    user = db.get(User, int(user_id))
    if user is None:
        raise NotFoundError('User not found')
    booking = booking_service.active_booking(db, user.id)
    mates = booking_service.roommates(db, user.id, booking['room_id']) if booking else []
    return {
        'student': {'id': user.id, 'full_name': user.full_name, 'email': user.email},
        'booking': booking,
        'room': booking['room'] if booking else None,
        'roommates': mates,
        'todays_menu': mess_menu_service.todays_menu(db, time_provider=time_provider),
        'attendance': attendance_service.todays_status(db, user.id, time_provider=time_provider),
    }


def security_dashboard(
    db: Session,
    *,
    notifier: CheckoutNotifier | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    listing = attendance_service.list_attendance(db, 'today', time_provider=time_provider)
    live = notifier.notifications() if notifier is not None else []
    seen = {item['id'] for item in live}
    recent = [item for item in listing['notifications'] if item['id'] not in seen]
    return {
        'stats': listing['stats'],
        'recent_entries': listing['rows'][:10],
        'notifications': [*live, *recent],
    }


def mess_dashboard(db: Session, *, time_provider: TimeProvider = default_time_provider) -> dict:
    return {
        'todays_menu': mess_menu_service.todays_menu(db, time_provider=time_provider),
        'weekly_menu': mess_menu_service.weekly_menu(db),
    }


def hostel_dashboard(db: Session, user_id: int) -> dict:
    hostel = hostel_service.get_hostel(db, user_id)
    payload = hostel_service.serialize_hostel(hostel)
    return {
        'hostel': payload,
        'status': 'Approved' if payload['is_approved'] else 'Pending Approval',
        'commission_percent': round(payload['commission_rate'] * 100, 2),
    }
