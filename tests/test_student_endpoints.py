import tempfile
import unittest
from datetime import date
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dormmate.assistant.conversation import WELCOME_MESSAGE, ConversationStore
from dormmate.assistant.keyword import KeywordAssistant
from dormmate.db import Base, get_db
from dormmate.models import Attendance, Booking, Room, User
from dormmate.routers import assistant, attendance
from dormmate.services.attendance_service import CheckoutNotifier
from dormmate.services.auth_service import issue_session


class StudentEndpointTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_student_endpoints.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        app = FastAPI()
        app.include_router(attendance.router)
        app.include_router(assistant.router)

        def override_get_db():
            db = cls._session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        cls.app = app
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls):
        cls.client.close()
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for model in (Attendance, Booking, Room, User):
                db.query(model).delete()
            student = User(email='john@example.com', full_name='John Doe', role='student')
            guard = User(email='guard@example.com', full_name='Gate Guard', role='security')
            room = Room(room_number='A-101', floor='1', capacity=2, price_per_month=5000, amenities=['wifi'])
            db.add_all([student, guard, room])
            db.flush()
            db.add(Booking(user_id=student.id, room_id=room.id, start_date=date(2026, 1, 1),
                           end_date=date(2026, 12, 31), status='approved', payment_status='paid'))
            db.commit()
            self.student_headers = {'Authorization': f"Bearer {issue_session(student)['token']}"}
            self.guard_headers = {'Authorization': f"Bearer {issue_session(guard)['token']}"}
        finally:
            db.close()

        self.notifier = CheckoutNotifier(self._session_factory)
        self.notifier.start()
        self.app.state.checkout_notifier = self.notifier
        self.app.state.conversations = ConversationStore(KeywordAssistant)

    def tearDown(self):
        self.notifier.stop()

    def test_check_in_and_out_flow(self):
        self.assertEqual(self.client.get('/api/attendance/me', headers=self.student_headers).json()['status'], 'Not Started')

        first = self.client.post('/api/attendance/check-in', headers=self.student_headers).json()
        again = self.client.post('/api/attendance/check-in', headers=self.student_headers).json()
        self.assertFalse(first['updated'])
        self.assertTrue(again['updated'])
        self.assertEqual(again['status'], 'Checked In')

        done = self.client.post('/api/attendance/check-out', headers=self.student_headers)
        self.assertEqual(done.status_code, 200)
        self.assertEqual(done.json()['status'], 'Completed')

        listing = self.client.get('/api/attendance', params={'period': 'today'}, headers=self.guard_headers).json()
        self.assertEqual(listing['count'], 1)
        self.assertEqual(listing['stats']['checked_out'], 1)
        self.assertEqual(listing['rows'][0]['user']['full_name'], 'John Doe')

    def test_check_out_without_check_in_records_the_exit(self):
        response = self.client.post('/api/attendance/check-out', headers=self.student_headers)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIsNone(body['check_in'])
        self.assertIsNotNone(body['check_out'])
        self.assertFalse(body['is_checked_in'])

        listing = self.client.get('/api/attendance', params={'period': 'today'}, headers=self.guard_headers).json()
        self.assertEqual(listing['count'], 1)
        self.assertIsNone(listing['rows'][0]['duration'])
        self.assertEqual(listing['stats']['checked_out'], 1)

    def test_monitoring_is_staff_only(self):
        self.assertEqual(self.client.get('/api/attendance', headers=self.student_headers).status_code, 403)
        self.assertEqual(self.client.post('/api/attendance/check-in', headers=self.guard_headers).status_code, 403)
        bad_period = self.client.get('/api/attendance', params={'period': 'month'}, headers=self.guard_headers)
        self.assertEqual(bad_period.status_code, 400)

    def test_checkout_notification_can_be_dismissed(self):
        self.client.post('/api/attendance/check-in', headers=self.student_headers)
        self.client.post('/api/attendance/check-out', headers=self.student_headers)

        notices = self.client.get('/api/attendance/notifications', headers=self.guard_headers).json()
        self.assertEqual([item['student'] for item in notices], ['John Doe'])
        notice_id = notices[0]['id']
        self.assertEqual(
            self.client.delete(f'/api/attendance/notifications/{notice_id}', headers=self.guard_headers).status_code,
            200,
        )
        self.assertEqual(
            self.client.delete(f'/api/attendance/notifications/{notice_id}', headers=self.guard_headers).status_code,
            404,
        )

    def test_assistant_chat_keeps_history_per_user(self):
        self.assertEqual(self.client.post('/api/assistant/chat', json={'message': 'hi'}).status_code, 401)

        response = self.client.post('/api/assistant/chat', json={'message': 'Which room am I in?'}, headers=self.student_headers)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload['ok'])
        self.assertIn('My Room page', payload['reply'])
        self.assertEqual([message['role'] for message in payload['messages']], ['assistant', 'user', 'assistant'])

        history = self.client.get('/api/assistant/messages', headers=self.student_headers).json()
        self.assertEqual(len(history), 3)
        guard_history = self.client.get('/api/assistant/messages', headers=self.guard_headers).json()
        self.assertEqual([message['content'] for message in guard_history], [WELCOME_MESSAGE])

        self.client.delete('/api/assistant/messages', headers=self.student_headers)
        self.assertEqual(len(self.client.get('/api/assistant/messages', headers=self.student_headers).json()), 1)
