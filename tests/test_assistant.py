import asyncio
import json
import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dormmate.assistant.base import AssistantBackend, AssistantError
from dormmate.assistant.completion import SYSTEM_PROMPT, CompletionAssistant
from dormmate.assistant.context import build_context
from dormmate.assistant.conversation import APOLOGY_MESSAGE, WELCOME_MESSAGE, Conversation, ConversationStore
from dormmate.assistant.keyword import DEFAULT_RESPONSE, TOPIC_RESPONSES, KeywordAssistant, match_topic
from dormmate.assistant.registry import AssistantRegistry, build_registry
from dormmate.core.time_provider import APP_ZONEINFO, TimeProvider
from dormmate.db import Base
from dormmate.models import Booking, MessMenu, Room, User
from dormmate.routers import assistant
from dormmate.routers.assistant import get_proxy_backend


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt.replace(tzinfo=APP_ZONEINFO)

    def now(self) -> datetime:
        return self._frozen_dt


class FailingBackend(AssistantBackend):
    name = 'failing'

    async def reply(self, messages, context=None):
        raise AssistantError('upstream unavailable')


def _completion(handler, **kwargs) -> CompletionAssistant:
    return CompletionAssistant(
        api_key=kwargs.pop('api_key', 'sk-test'),
        base_url='https://llm.test/api/v1',
        model='test-model',
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class KeywordAssistantTests(unittest.TestCase):
    def test_first_topic_in_table_order_wins(self):
        self.assertEqual(match_topic('Is the WiFi down near my room?'), 'room')
        self.assertEqual(match_topic('What are the laundry timings?'), 'laundry')
        self.assertIsNone(match_topic('Who won the match yesterday?'))

    def test_reply_uses_last_user_message(self):
        backend = KeywordAssistant()
        messages = [
            {'role': 'user', 'content': 'tell me about visitors'},
            {'role': 'assistant', 'content': 'ok'},
            {'role': 'user', 'content': 'and the mess?'},
        ]
        reply = asyncio.run(backend.reply(messages))
        self.assertEqual(reply, dict(TOPIC_RESPONSES)['mess'])
        self.assertEqual(asyncio.run(backend.reply([{'role': 'user', 'content': 'hello'}])), DEFAULT_RESPONSE)


class CompletionAssistantTests(unittest.TestCase):
    def test_posts_chat_completion_with_system_prompt_and_context(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen['url'] = str(request.url)
            seen['auth'] = request.headers['Authorization']
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={'choices': [{'message': {'content': 'Room A-101 is yours.'}}]})

        backend = _completion(handler)
        reply = asyncio.run(
            backend.reply(
                [{'role': 'user', 'content': 'which room am I in?', 'timestamp': 'ignored'}],
                'Room: A-101 on floor 1 (capacity 2).',
            )
        )
        self.assertEqual(reply, 'Room A-101 is yours.')
        self.assertEqual(seen['url'], 'https://llm.test/api/v1/chat/completions')
        self.assertEqual(seen['auth'], 'Bearer sk-test')
        messages = seen['body']['messages']
        self.assertEqual(messages[0]['role'], 'system')
        self.assertTrue(messages[0]['content'].startswith(SYSTEM_PROMPT))
        self.assertIn('A-101', messages[0]['content'])
        self.assertEqual(messages[1], {'role': 'user', 'content': 'which room am I in?'})
        self.assertEqual(seen['body']['model'], 'test-model')

    def test_upstream_error_message_is_surfaced(self):
        def handler(request):
            return httpx.Response(429, json={'error': {'message': 'Rate limit exceeded'}})

        with self.assertRaises(AssistantError) as ctx:
            asyncio.run(_completion(handler).reply([{'role': 'user', 'content': 'hi'}]))
        self.assertEqual(str(ctx.exception), 'Rate limit exceeded')

    def test_missing_key_and_malformed_body(self):
        with self.assertRaises(AssistantError):
            asyncio.run(_completion(lambda request: httpx.Response(200), api_key='').reply([]))

        def handler(request):
            return httpx.Response(200, json={'choices': []})

        with self.assertRaises(AssistantError):
            asyncio.run(_completion(handler).reply([{'role': 'user', 'content': 'hi'}]))

    def test_transport_error_becomes_assistant_error(self):
        def handler(request):
            raise httpx.ConnectError('refused', request=request)

        with self.assertRaises(AssistantError):
            asyncio.run(_completion(handler).reply([{'role': 'user', 'content': 'hi'}]))


class RegistryAndConversationTests(unittest.TestCase):
    def test_registry_lists_builtin_backends(self):
        registry = build_registry()
        self.assertEqual(registry.list(), ['completion', 'keyword'])
        self.assertIsInstance(registry.get('keyword'), KeywordAssistant)
        with self.assertRaises(KeyError):
            AssistantRegistry().get('keyword')

    def test_conversation_appends_reply(self):
        conversation = Conversation(backend=KeywordAssistant())
        self.assertEqual(conversation.messages[0]['content'], WELCOME_MESSAGE)
        result = asyncio.run(conversation.send('  laundry hours?  '))
        self.assertTrue(result.ok)
        self.assertEqual([m['role'] for m in conversation.messages], ['assistant', 'user', 'assistant'])
        self.assertEqual(conversation.messages[1]['content'], 'laundry hours?')
        self.assertEqual(len(conversation.history()), 2)

    def test_backend_failure_appends_apology_and_notice(self):
        conversation = Conversation(backend=FailingBackend())
        result = asyncio.run(conversation.send('room?'))
        self.assertFalse(result.ok)
        self.assertEqual(result.reply, APOLOGY_MESSAGE)
        self.assertEqual(conversation.messages[-1]['content'], APOLOGY_MESSAGE)
        self.assertEqual(result.notice.variant, 'destructive')

    def test_empty_message_is_rejected(self):
        with self.assertRaises(ValueError):
            asyncio.run(Conversation(backend=KeywordAssistant()).send('   '))

    def test_store_keeps_one_conversation_per_user(self):
        store = ConversationStore(KeywordAssistant)
        first = store.get(1)
        self.assertIs(store.get(1), first)
        self.assertIsNot(store.get(2), first)
        store.reset(1)
        self.assertIsNot(store.get(1), first)


class AssistantContextTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_assistant.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

        db = cls._session_factory()
        try:
            john = User(email='john@example.com', full_name='John Doe', role='student')
            ray = User(email='ray@example.com', full_name='Ray Chen', role='student')
            loner = User(email='loner@example.com', full_name='Sam Lee', role='student')
            room = Room(room_number='A-101', floor='1', capacity=2, price_per_month=5000, amenities=['wifi'])
            db.add_all([john, ray, loner, room])
            db.flush()
            db.add_all(
                [
                    Booking(user_id=john.id, room_id=room.id, start_date=date(2026, 7, 1), end_date=date(2026, 12, 31),
                            status='approved', payment_status='paid'),
                    Booking(user_id=ray.id, room_id=room.id, start_date=date(2026, 7, 1), end_date=date(2026, 12, 31),
                            status='approved', payment_status='pending'),
                    MessMenu(day_of_week='Monday', meal_type='breakfast', items=['Idli', 'Sambar']),
                ]
            )
            db.commit()
            cls.john_id = john.id
            cls.loner_id = loner.id
        finally:
            db.close()

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def test_context_follows_keywords(self):
        monday = FixedTimeProvider(datetime(2026, 3, 2, 9, 0))
        db = self._session_factory()
        try:
            self.assertIsNone(build_context(db, self.john_id, 'hello there', time_provider=monday))

            room = build_context(db, self.john_id, 'Who is in my ROOM?', time_provider=monday)
            self.assertIn('Room: A-101 on floor 1 (capacity 2).', room)
            self.assertIn('Roommates: Ray Chen.', room)

            food = build_context(db, self.john_id, 'what food is there', time_provider=monday)
            self.assertIn('Mess menu for Monday:', food)
            self.assertIn('- breakfast: Idli, Sambar', food)

            booking = build_context(db, self.john_id, 'my booking status', time_provider=monday)
            self.assertIn('status approved, payment paid', booking)
        finally:
            db.close()

    def test_context_without_assignment(self):
        db = self._session_factory()
        try:
            text = build_context(db, self.loner_id, 'room and booking', time_provider=FixedTimeProvider(datetime(2026, 3, 3, 9)))
            self.assertIn('no active room assignment', text)
            self.assertIn('Bookings: none.', text)
        finally:
            db.close()


class ChatProxyTests(unittest.TestCase):
    def setUp(self):
        app = FastAPI()
        app.include_router(assistant.router)
        self.app = app
        self.client = TestClient(app)

    def tearDown(self):
        self.app.dependency_overrides.clear()
        self.client.close()

    def test_preflight_allows_any_origin(self):
        response = self.client.options('/functions/openrouter-chat')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['access-control-allow-origin'], '*')

    def test_proxy_returns_reply(self):
        backend = _completion(lambda request: httpx.Response(200, json={'choices': [{'message': {'content': 'Hi!'}}]}))
        self.app.dependency_overrides[get_proxy_backend] = lambda: backend
        response = self.client.post('/functions/openrouter-chat', json={'message': 'hello'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'reply': 'Hi!'})

    def test_proxy_failures_return_error_payload(self):
        backend = _completion(lambda request: httpx.Response(500, json={'error': 'bad gateway'}))
        self.app.dependency_overrides[get_proxy_backend] = lambda: backend
        response = self.client.post('/functions/openrouter-chat', json={'message': 'hello'})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'bad gateway'})
        self.assertEqual(response.headers['access-control-allow-origin'], '*')

        missing = self.client.post('/functions/openrouter-chat', json={})
        self.assertEqual(missing.status_code, 500)
        self.assertIn('error', missing.json())
