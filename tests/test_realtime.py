import tempfile
import unittest
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.websockets import WebSocketDisconnect

from dormmate.db import Base
from dormmate.models import Room, User
from dormmate.realtime.feed import DELETE, INSERT, UPDATE, ChangeEvent, ChangeFeed, InvalidFilterError, RowFilter, change_feed
from dormmate.realtime.live_collection import LiveCollection
from dormmate.routers import realtime
from dormmate.routers.realtime import event_message, may_subscribe
from dormmate.services import room_service
from dormmate.services.auth_service import issue_session


class RowFilterTests(unittest.TestCase):
    def test_parse_equality_filter(self):
        row_filter = RowFilter.parse('user_id=eq.7')
        self.assertEqual(row_filter, RowFilter(column='user_id', value='7'))
        self.assertTrue(row_filter.matches_row({'user_id': 7}))
        self.assertFalse(row_filter.matches_row({'user_id': 8}))
        self.assertFalse(row_filter.matches_row({'room_id': 7}))
        self.assertIsNone(RowFilter.parse(''))

    def test_rejects_other_operators(self):
        with self.assertRaises(InvalidFilterError):
            RowFilter.parse('user_id=gt.7')
        with self.assertRaises(InvalidFilterError):
            RowFilter.parse('user_id')

    def test_boolean_values_compare_case_insensitively(self):
        self.assertTrue(RowFilter.parse('is_available=eq.true').matches_row({'is_available': True}))


class ChangeFeedTests(unittest.TestCase):
    def test_publish_reaches_matching_subscribers_only(self):
        feed = ChangeFeed()
        everything, mine = [], []
        feed.subscribe('bookings', everything.append)
        feed.subscribe('bookings', mine.append, filter='user_id=eq.3')

        feed.publish(ChangeEvent('bookings', INSERT, new={'id': 1, 'user_id': 3}))
        feed.publish(ChangeEvent('bookings', INSERT, new={'id': 2, 'user_id': 4}))
        feed.publish(ChangeEvent('bookings', DELETE, old={'id': 1, 'user_id': 3}))

        self.assertEqual(len(everything), 3)
        self.assertEqual([event.row['id'] for event in mine], [1, 1])

    def test_failing_handler_does_not_block_others(self):
        feed = ChangeFeed()
        received = []

        def broken(event):
            raise RuntimeError('boom')

        feed.subscribe('rooms', broken)
        feed.subscribe('rooms', received.append)
        delivered = feed.publish(ChangeEvent('rooms', UPDATE, new={'id': 1}))
        self.assertEqual(delivered, 1)
        self.assertEqual(len(received), 1)

    def test_unsubscribe_is_idempotent(self):
        feed = ChangeFeed()
        subscription = feed.subscribe('rooms', lambda event: None)
        subscription.unsubscribe()
        subscription.unsubscribe()
        self.assertEqual(feed.subscriber_count('rooms'), 0)

    def test_unknown_table_is_rejected(self):
        with self.assertRaises(ValueError):
            ChangeFeed().subscribe('payments', lambda event: None)


class SessionPublishingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_realtime.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        self.events = []
        self.subscription = change_feed.subscribe('rooms', self.events.append)

    def tearDown(self):
        self.subscription.unsubscribe()
        db = self._session_factory()
        try:
            db.query(Room).delete()
            db.commit()
        finally:
            db.close()

    def test_events_publish_on_commit(self):
        db = self._session_factory()
        try:
            room = Room(room_number='C-301', floor='3', capacity=2, price_per_month=4500, amenities=['wifi'])
            db.add(room)
            db.flush()
            self.assertEqual(self.events, [])
            db.commit()
            self.assertEqual([(event.event_type, event.new['room_number']) for event in self.events], [(INSERT, 'C-301')])

            self.assertEqual(room.capacity, 2)
            room.capacity = 3
            db.commit()
            self.assertEqual(self.events[-1].event_type, UPDATE)
            self.assertEqual(self.events[-1].old['capacity'], 2)
            self.assertEqual(self.events[-1].new['capacity'], 3)
        finally:
            db.close()

    def test_rolled_back_changes_are_discarded(self):
        db = self._session_factory()
        try:
            db.add(Room(room_number='C-302', floor='3', capacity=2, price_per_month=4500, amenities=[]))
            db.flush()
            db.rollback()
        finally:
            db.close()
        self.assertEqual(self.events, [])

    def test_live_rooms_follow_service_writes(self):
        db = self._session_factory()
        try:
            subscribers = change_feed.subscriber_count('rooms')
            created = room_service.create_room(
                db, {'room_number': 'C-303', 'floor': '3', 'capacity': 2, 'price_per_month': 4500, 'amenities': []}
            )
            with LiveCollection('rooms', lambda: room_service.fetch_rooms(db), search_fields=('room_number',)) as live:
                self.assertEqual([row['capacity'] for row in live.rows], [2])
                room_service.update_room(
                    db, created['id'], {'room_number': 'C-303', 'floor': '3', 'capacity': 4, 'price_per_month': 4500}
                )
                room_service.create_room(
                    db, {'room_number': 'C-304', 'floor': '3', 'capacity': 1, 'price_per_month': 3000, 'amenities': []}
                )
                self.assertEqual(live.search('c-303')[0]['capacity'], 4)
                self.assertEqual(len(live.rows), 2)
            self.assertEqual(change_feed.subscriber_count('rooms'), subscribers)
        finally:
            db.close()


class LiveCollectionTests(unittest.TestCase):
    def setUp(self):
        self.feed = ChangeFeed()
        self.source = [
            {'id': 1, 'user_id': 5, 'room_number': 'A-101', 'status': 'approved'},
            {'id': 2, 'user_id': 5, 'room_number': 'A-102', 'status': 'pending'},
        ]

    def _collection(self, **kwargs):
        return LiveCollection(
            'bookings',
            lambda: list(self.source),
            feed=self.feed,
            search_fields=('room_number', 'status'),
            sort_key=lambda row: row['id'],
            **kwargs,
        )

    def test_events_patch_rows_in_place(self):
        with self._collection() as live:
            self.feed.publish(ChangeEvent('bookings', UPDATE, new={'id': 2, 'status': 'approved'}))
            self.feed.publish(ChangeEvent('bookings', INSERT, new={'id': 3, 'user_id': 6, 'room_number': 'B-204'}))
            self.feed.publish(ChangeEvent('bookings', DELETE, old={'id': 1}))
            self.assertEqual([row['id'] for row in live.rows], [2, 3])
            self.assertEqual(live.rows[0]['room_number'], 'A-102')
            self.assertEqual(live.rows[0]['status'], 'approved')
            self.assertEqual([row['id'] for row in live.search('b-2')], [3])
            self.assertEqual([row['id'] for row in live.search('a-10', ('status',))], [])
        self.assertEqual(self.feed.subscriber_count('bookings'), 0)

    def test_filtered_collection_drops_rows_leaving_the_filter(self):
        live = self._collection(row_filter='user_id=eq.5').start()
        try:
            self.feed.publish(ChangeEvent('bookings', UPDATE, new={'id': 1, 'user_id': 9}, old={'id': 1, 'user_id': 5}))
            self.assertEqual([row['id'] for row in live.rows], [2])
        finally:
            live.stop()

    def test_fetch_failure_keeps_rows_and_adds_notice(self):
        live = self._collection().start()
        try:
            def failing_fetch():
                raise RuntimeError('connection lost')

            live._fetch = failing_fetch
            self.assertFalse(live.refresh())
            self.assertEqual(len(live.rows), 2)
            self.assertEqual(live.notices[0].variant, 'destructive')
            self.assertEqual(live.notices[0].description, 'connection lost')
            live.dismiss_notices()
            self.assertEqual(live.notices, [])
        finally:
            live.stop()


class RealtimeEndpointTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        app = FastAPI()
        app.include_router(realtime.router)
        cls.app = app

    def setUp(self):
        self.client = TestClient(self.app)
        student = User(id=41, email='john@example.com', full_name='John Doe', role='student')
        self.token = issue_session(student)['token']

    def tearDown(self):
        self.client.close()

    def test_redacts_password_hash(self):
        message = event_message(ChangeEvent('users', UPDATE, new={'id': 1, 'password_hash': 'x'}, old={'id': 1, 'password_hash': 'y'}))
        self.assertEqual(message['new'], {'id': 1})
        self.assertEqual(message['old'], {'id': 1})
        self.assertEqual(message['eventType'], 'UPDATE')

    def test_subscription_access_rules(self):
        student = {'user_id': 41, 'role': 'student'}
        self.assertTrue(may_subscribe({'user_id': 1, 'role': 'security'}, 'attendance', None))
        self.assertTrue(may_subscribe(student, 'rooms', None))
        self.assertTrue(may_subscribe(student, 'attendance', RowFilter('user_id', '41')))
        self.assertFalse(may_subscribe(student, 'attendance', None))
        self.assertFalse(may_subscribe(student, 'attendance', RowFilter('user_id', '42')))

    def test_rejects_missing_session(self):
        with self.assertRaises(WebSocketDisconnect) as ctx:
            with self.client.websocket_connect('/realtime/rooms'):
                pass
        self.assertEqual(ctx.exception.code, 4401)

    def test_rejects_other_students_rows(self):
        with self.assertRaises(WebSocketDisconnect) as ctx:
            with self.client.websocket_connect(f'/realtime/attendance?token={self.token}&filter=user_id=eq.42'):
                pass
        self.assertEqual(ctx.exception.code, 4403)

    def test_streams_committed_changes(self):
        with self.client.websocket_connect(f'/realtime/attendance?token={self.token}&filter=user_id=eq.41') as ws:
            hello = ws.receive_json()
            self.assertEqual(hello['type'], 'subscribed')
            change_feed.publish(ChangeEvent('attendance', INSERT, new={'id': 9, 'user_id': 42}))
            change_feed.publish(ChangeEvent('attendance', INSERT, new={'id': 10, 'user_id': 41}))
            message = ws.receive_json()
        self.assertEqual(message['table'], 'attendance')
        self.assertEqual(message['new'], {'id': 10, 'user_id': 41})
