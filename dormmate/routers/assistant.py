import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dormmate.assistant.completion import CompletionAssistant
from dormmate.assistant.context import build_context
from dormmate.assistant.conversation import ConversationStore
from dormmate.assistant.registry import configured_backend
from dormmate.core.router_guard import require_auth_user
from dormmate.db import get_db
from dormmate.schemas import ChatRequest


logger = logging.getLogger(__name__)

router = APIRouter(tags=['Assistant'])

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, x-client-info, apikey, content-type',
}


def get_proxy_backend() -> CompletionAssistant:
    return CompletionAssistant()


def get_conversations(request: Request) -> ConversationStore:
    store = getattr(request.app.state, 'conversations', None)
    if store is None:
        store = ConversationStore(configured_backend)
        request.app.state.conversations = store
    return store


@router.options('/functions/openrouter-chat')
def openrouter_chat_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post('/functions/openrouter-chat')
async def openrouter_chat(request: Request, backend: CompletionAssistant = Depends(get_proxy_backend)):
    try:
        body = await request.json()
        message = str(body.get('message') or '').strip()
        if not message:
            raise ValueError('message is required')
        reply = await backend.reply([{'role': 'user', 'content': message}])
    except Exception as exc:
        logger.warning('assistant_proxy_failed error=%s', exc)
        return JSONResponse({'error': str(exc)}, status_code=500, headers=CORS_HEADERS)
    return JSONResponse({'reply': reply}, headers=CORS_HEADERS)


@router.post('/api/assistant/chat')
async def assistant_chat(
    payload: ChatRequest,
    user: dict = Depends(require_auth_user),
    db: Session = Depends(get_db),
    conversations: ConversationStore = Depends(get_conversations),
):
    conversation = conversations.get(user['user_id'])
    context = build_context(db, user['user_id'], payload.message)
    result = await conversation.send(payload.message, context)
    return {
        'ok': result.ok,
        'reply': result.reply,
        'notice': result.notice.as_dict() if result.notice else None,
        'messages': conversation.messages,
    }


@router.get('/api/assistant/messages')
def assistant_messages(
    user: dict = Depends(require_auth_user),
    conversations: ConversationStore = Depends(get_conversations),
):
    return conversations.get(user['user_id']).messages


@router.delete('/api/assistant/messages')
def assistant_reset(
    user: dict = Depends(require_auth_user),
    conversations: ConversationStore = Depends(get_conversations),
):
    conversations.reset(user['user_id'])
    return {'ok': True}
