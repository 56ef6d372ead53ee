from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


ChatMessage = dict[str, Any]


class AssistantError(RuntimeError):
    """The backend could not produce a reply."""


class AssistantBackend(ABC):
    name: str

    @abstractmethod
    async def reply(self, messages: list[ChatMessage], context: str | None = None) -> str:
        """Answer the last user message of ``messages``.

        ``messages`` holds ``{'role', 'content'}`` dicts, oldest first.
        ``context`` is extra system-prompt text describing the user's own data.
        """
        raise NotImplementedError


def last_user_message(messages: list[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.get('role') == 'user':
            return str(message.get('content') or '')
    return ''
