import tempfile
import unittest
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dormmate.db import Base, get_db
from dormmate.models import AuthAccount, Booking, MessMenu, Room, User
from dormmate.routers import bookings, mess_menu, rooms, students
from dormmate.services.auth_service import issue_session


class ManagementApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_management_api.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        app = FastAPI()
        app.include_router(students.router)
        app.include_router(rooms.router)
        app.include_router(bookings.router)
        app.include_router(mess_menu.router)

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        cls.client.close()
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for model in (Booking, MessMenu, Room, User, AuthAccount):
                db.query(model).delete()
            admin = User(email='admin@example.com', full_name='Admin', role='admin')
            mess = User(email='mess@example.com', full_name='Mess Staff', role='mess')
            student = User(email='john@example.com', full_name='John Doe', role='student')
            db.add_all([admin, mess, student])
            db.commit()
            self.admin_headers = {'Authorization': f"Bearer {issue_session(admin)['token']}"}
            self.mess_headers = {'Authorization': f"Bearer {issue_session(mess)['token']}"}
            self.student_headers = {'Authorization': f"Bearer {issue_session(student)['token']}"}
            self.student_id = student.id
        finally:
            db.close()

    def _create_student(self, full_name, email):
        return self.client.post(
            '/api/students',
            json={'full_name': full_name, 'email': email, 'password': 'secret123'},
            headers=self.admin_headers,
        )

    def test_requires_session_and_role(self):
        self.assertEqual(self.client.get('/api/students').status_code, 401)
        self.assertEqual(self.client.get('/api/rooms', headers=self.student_headers).status_code, 403)

    def test_student_search_matches_partial_names(self):
        self.assertEqual(self._create_student('Jolene Smith', 'jolene@example.com').status_code, 201)
        self.assertEqual(self._create_student('Priya Nair', 'priya@example.com').status_code, 201)

        response = self.client.get('/api/students', params={'search': 'jo'}, headers=self.admin_headers)
        self.assertEqual(response.status_code, 200)
        names = sorted(row['full_name'] for row in response.json()['rows'])
        self.assertEqual(names, ['John Doe', 'Jolene Smith'])

        empty = self.client.get('/api/students', params={'search': 'nobody'}, headers=self.admin_headers).json()
        self.assertTrue(empty['empty'])
        self.assertEqual(empty['message'], 'No records found')

    def test_student_validation_and_duplicates(self):
        short = self.client.post(
            '/api/students',
            json={'full_name': 'J', 'email': 'j@example.com', 'password': 'secret123'},
            headers=self.admin_headers,
        )
        self.assertEqual(short.status_code, 422)
        self.assertEqual(self._create_student('Jane Roe', 'jane@example.com').status_code, 201)
        self.assertEqual(self._create_student('Jane Again', 'JANE@example.com').status_code, 400)

    def test_delete_without_confirmation_is_rejected(self):
        response = self.client.delete(f'/api/students/{self.student_id}', headers=self.admin_headers)
        self.assertEqual(response.status_code, 409)
        db = self._session_factory()
        try:
            self.assertIsNotNone(db.get(User, self.student_id))
        finally:
            db.close()

        response = self.client.delete(
            f'/api/students/{self.student_id}', params={'confirm': 'true'}, headers=self.admin_headers
        )
        self.assertEqual(response.status_code, 200)

    def test_room_crud_and_amenity_catalogue(self):
        bad = self.client.post(
            '/api/rooms',
            json={'room_number': 'A-1', 'floor': '1', 'capacity': 0, 'amenities': ['wifi']},
            headers=self.admin_headers,
        )
        self.assertEqual(bad.status_code, 422)
        unknown_amenity = self.client.post(
            '/api/rooms',
            json={'room_number': 'A-1', 'floor': '1', 'capacity': 2, 'amenities': ['pool']},
            headers=self.admin_headers,
        )
        self.assertEqual(unknown_amenity.status_code, 422)

        for number in ('B-2', 'A-1'):
            created = self.client.post(
                '/api/rooms',
                json={'room_number': number, 'floor': number[0], 'capacity': 2, 'price_per_month': 4500},
                headers=self.admin_headers,
            )
            self.assertEqual(created.status_code, 201)
        listing = self.client.get('/api/rooms', headers=self.admin_headers).json()
        self.assertEqual([row['room_number'] for row in listing['rows']], ['A-1', 'B-2'])

        duplicate = self.client.post(
            '/api/rooms', json={'room_number': 'A-1', 'floor': '1', 'capacity': 2}, headers=self.admin_headers
        )
        self.assertEqual(duplicate.status_code, 400)

    def test_booking_api_reports_full_room(self):
        room = self.client.post(
            '/api/rooms', json={'room_number': 'C-1', 'floor': '3', 'capacity': 1}, headers=self.admin_headers
        ).json()
        other = self._create_student('Jolene Smith', 'jolene@example.com').json()
        payload = {'room_id': room['id'], 'start_date': '2026-07-01', 'end_date': '2026-12-31'}

        first = self.client.post('/api/bookings', json={**payload, 'user_id': self.student_id}, headers=self.admin_headers)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()['start_date'], '2026-07-01')

        second = self.client.post('/api/bookings', json={**payload, 'user_id': other['id']}, headers=self.admin_headers)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()['detail'], 'Room is at full capacity')

        backwards = self.client.post(
            '/api/bookings',
            json={**payload, 'user_id': other['id'], 'start_date': '2027-01-01'},
            headers=self.admin_headers,
        )
        self.assertEqual(backwards.status_code, 422)

        listing = self.client.get('/api/bookings', params={'search': 'john'}, headers=self.admin_headers).json()
        self.assertEqual(listing['count'], 1)
        self.assertEqual(listing['rows'][0]['room']['room_number'], 'C-1')

        mine = self.client.get('/api/bookings/me', headers=self.student_headers).json()
        self.assertEqual(mine['active']['room']['room_number'], 'C-1')

    def test_raising_capacity_reopens_a_full_room(self):
        room = self.client.post(
            '/api/rooms', json={'room_number': 'D-1', 'floor': '4', 'capacity': 1}, headers=self.admin_headers
        ).json()
        self.client.post(
            '/api/bookings',
            json={'user_id': self.student_id, 'room_id': room['id'], 'start_date': '2026-07-01', 'end_date': '2026-12-31'},
            headers=self.admin_headers,
        )
        self.assertFalse(self.client.get('/api/rooms', headers=self.admin_headers).json()['rows'][0]['is_available'])

        updated = self.client.put(
            f"/api/rooms/{room['id']}",
            json={'room_number': 'D-1', 'floor': '4', 'capacity': 3, 'is_available': False},
            headers=self.admin_headers,
        )
        self.assertEqual(updated.status_code, 200)
        self.assertTrue(updated.json()['is_available'])
        self.assertEqual(updated.json()['occupied'], 1)

        shrink = self.client.put(
            f"/api/rooms/{room['id']}",
            json={'room_number': 'D-1', 'floor': '4', 'capacity': 1},
            headers=self.admin_headers,
        )
        self.assertEqual(shrink.status_code, 200)
        self.assertFalse(shrink.json()['is_available'])

    def test_mess_menu_is_ordered_by_day_then_meal(self):
        entries = [
            ('Tuesday', 'dinner', ['Soup']),
            ('monday', 'Lunch', ['Rice', 'Dal']),
            ('Monday', 'breakfast', ['Eggs']),
        ]
        for day, meal, items in entries:
            response = self.client.post(
                '/api/mess-menu',
                json={'day_of_week': day, 'meal_type': meal, 'items': items},
                headers=self.mess_headers,
            )
            self.assertEqual(response.status_code, 201)

        rows = self.client.get('/api/mess-menu', headers=self.mess_headers).json()['rows']
        self.assertEqual(
            [(row['day_of_week'], row['meal_type']) for row in rows],
            [('Monday', 'breakfast'), ('Monday', 'lunch'), ('Tuesday', 'dinner')],
        )

        no_items = self.client.post(
            '/api/mess-menu',
            json={'day_of_week': 'Friday', 'meal_type': 'lunch', 'items': ['  ']},
            headers=self.mess_headers,
        )
        self.assertEqual(no_items.status_code, 422)
