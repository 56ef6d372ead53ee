from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from dormmate.assistant.base import AssistantBackend, ChatMessage
from dormmate.core.notices import Notice
from dormmate.core.time_provider import default_time_provider


logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm your DormMate assistant. I can help you with room bookings, mess menu information, "
    'and other dormitory services. How can I assist you today?'
)
APOLOGY_MESSAGE = "I'm sorry, I encountered an error. Please try again."


@dataclass
class SendResult:
    reply: str
    ok: bool
    notice: Notice | None = None


@dataclass
class Conversation:
    backend: AssistantBackend
    messages: list[ChatMessage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.messages:
            self.messages.append(self._message('assistant', WELCOME_MESSAGE, welcome=True))

    @staticmethod
    def _message(role: str, content: str, *, welcome: bool = False) -> ChatMessage:
        message = {'role': role, 'content': content, 'timestamp': default_time_provider.utc_now()}
        if welcome:
            message['welcome'] = True
        return message

    def history(self) -> list[ChatMessage]:
        return [message for message in self.messages if not message.get('welcome')]

    async def send(self, text: str, context: str | None = None) -> SendResult:
        text = (text or '').strip()
        if not text:
            raise ValueError('Message is empty')
        self.messages.append(self._message('user', text))
        try:
            reply = await self.backend.reply(self.history(), context)
        except Exception:
            logger.exception('assistant_reply_failed backend=%s', self.backend.name)
            self.messages.append(self._message('assistant', APOLOGY_MESSAGE))
            return SendResult(
                reply=APOLOGY_MESSAGE,
                ok=False,
                notice=Notice.error('Failed to get a response. Please try again.'),
            )
        self.messages.append(self._message('assistant', reply))
        return SendResult(reply=reply, ok=True)


class ConversationStore:
    """One in-memory conversation per signed-in user."""

    def __init__(self, backend_factory):
        self._backend_factory = backend_factory
        self._conversations: dict[int, Conversation] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Conversation:
        with self._lock:
            conversation = self._conversations.get(int(user_id))
            if conversation is None:
                conversation = Conversation(backend=self._backend_factory())
                self._conversations[int(user_id)] = conversation
            return conversation

    def reset(self, user_id: int) -> None:
        with self._lock:
            self._conversations.pop(int(user_id), None)
