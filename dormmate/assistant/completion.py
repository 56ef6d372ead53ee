from __future__ import annotations

import logging

import httpx

from dormmate.assistant.base import AssistantBackend, AssistantError, ChatMessage
from dormmate.config import settings


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful assistant for the DormMate dormitory management system.
Your purpose is to answer questions ONLY related to:
- Room booking and availability
- Dormitory facilities and amenities
- Mess menu and meal information
- Student accommodation policies
- Check-in/check-out procedures
- Complaint filing processes
- WiFi and utility information
- Laundry services
- Visitor policies
- Payment information for accommodation

If a question is asked that is NOT related to the dormitory management system,
politely decline to answer and suggest asking a dormitory-related question instead.

Always be professional, concise, and helpful in your responses."""


class CompletionAssistant(AssistantBackend):
    """Chat-completions client for OpenRouter.

    The API key is read from settings on the server and never leaves it.
    ``transport`` lets tests substitute an ``httpx.MockTransport``.
    """

    name = 'completion'

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.base_url = (base_url or settings.openrouter_api_base).rstrip('/')
        self.model = model or settings.openrouter_model
        self.system_prompt = system_prompt
        self._transport = transport

    def build_messages(self, messages: list[ChatMessage], context: str | None = None) -> list[ChatMessage]:
        system = self.system_prompt
        if context:
            system = f'{system}\n\n{context}'
        history = [
            {'role': message['role'], 'content': message['content']}
            for message in messages
            if message.get('role') in ('user', 'assistant')
        ]
        return [{'role': 'system', 'content': system}, *history]

    async def reply(self, messages: list[ChatMessage], context: str | None = None) -> str:
        if not self.api_key:
            raise AssistantError('OpenRouter API key is not configured')
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
            'HTTP-Referer': settings.openrouter_referer,
            'X-Title': settings.openrouter_title,
        }
        payload = {
            'model': self.model,
            'messages': self.build_messages(messages, context),
            'temperature': settings.openrouter_temperature,
            'max_tokens': settings.openrouter_max_tokens,
        }
        try:
            async with httpx.AsyncClient(
                timeout=settings.openrouter_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(f'{self.base_url}/chat/completions', json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning('assistant_completion_transport_error error=%s', exc.__class__.__name__)
            raise AssistantError('Failed to reach the completion service') from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            error = body.get('error') if isinstance(body, dict) else None
            message = error.get('message') if isinstance(error, dict) else error
            logger.warning('assistant_completion_failed status=%s', response.status_code)
            raise AssistantError(message or 'Failed to get response from OpenRouter API')
        try:
            return body['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as exc:
            raise AssistantError('Malformed completion response') from exc
