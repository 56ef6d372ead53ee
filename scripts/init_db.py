from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dormmate.core.time_provider import default_time_provider
from dormmate.db import Base, SessionLocal, engine
from dormmate.models import MessMenu, Room, User
from dormmate.services.auth_service import create_account, ensure_admin_account
from dormmate.services.booking_service import create_booking
from dormmate.utils.mess import DAYS_OF_WEEK


Base.metadata.create_all(bind=engine)

DEMO_PASSWORD = 'student123'

ROOMS = [
    Room(room_number='A-101', floor='1', capacity=2, price_per_month=6500, amenities=['wifi', 'study_desk']),
    Room(room_number='A-102', floor='1', capacity=3, price_per_month=5500, amenities=['wifi', 'bathroom']),
    Room(room_number='B-204', floor='2', capacity=3, price_per_month=7000, amenities=['wifi', 'ac', 'balcony']),
]

STUDENTS = [
    ('John Doe', 'john@dormmate.com', 'A-101'),
    ('Jolene Smith', 'jolene@dormmate.com', 'A-102'),
    ('Alex Johnson', 'alex@dormmate.com', 'A-101'),
    ('Ray Chen', 'ray@dormmate.com', 'B-204'),
]

MENU = {
    'breakfast': ['Bread and Butter', 'Eggs', 'Cereal', 'Fruits'],
    'lunch': ['Rice', 'Dal', 'Vegetable Curry', 'Chapati', 'Salad'],
    'dinner': ['Noodles', 'Soup', 'Grilled Vegetables', 'Ice Cream'],
}

db = SessionLocal()
try:
    ensure_admin_account(db)
    if not db.query(Room).first():
        db.add_all(ROOMS)
        db.commit()

        rooms = {room.room_number: room.id for room in db.query(Room).all()}
        start = default_time_provider.today()
        for name, email, room_number in STUDENTS:
            student = create_account(db, email=email, password=DEMO_PASSWORD, full_name=name)
            create_booking(
                db,
                user_id=student.id,
                room_id=rooms[room_number],
                start_date=start,
                end_date=start + timedelta(days=180),
                status='approved',
            )

        for day in DAYS_OF_WEEK:
            for meal_type, items in MENU.items():
                db.add(MessMenu(day_of_week=day, meal_type=meal_type, items=items))
        db.commit()
    students_total = db.query(User).filter(User.role == 'student').count()
finally:
    db.close()

print(f'DB initialized with sample data ({students_total} students, password {DEMO_PASSWORD!r}).')
