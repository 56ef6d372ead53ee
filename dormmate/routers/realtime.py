import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from dormmate.core.router_guard import SESSION_COOKIE
from dormmate.realtime.feed import REALTIME_TABLES, ChangeEvent, InvalidFilterError, RowFilter, change_feed
from dormmate.services.auth_service import validate_session_token


logger = logging.getLogger(__name__)

router = APIRouter(tags=['Realtime'])

REDACTED_COLUMNS = ('password_hash',)
STAFF_ROLES = {'admin', 'security', 'mess'}
SHARED_TABLES = {'rooms', 'mess_menu'}
OWN_ROW_TABLES = {'attendance': 'user_id', 'bookings': 'user_id', 'hostels': 'id', 'users': 'id'}

CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_BAD_REQUEST = 4400


def _redact(row: dict) -> dict:
    return {key: value for key, value in row.items() if key not in REDACTED_COLUMNS}


def event_message(event: ChangeEvent) -> dict:
    payload = event.as_payload()
    payload['new'] = _redact(payload['new'])
    payload['old'] = _redact(payload['old'])
    return jsonable_encoder(payload)


def may_subscribe(session: dict, table: str, row_filter: RowFilter | None) -> bool:
    """Staff see every table; others see shared tables and their own rows."""
    if session.get('role') in STAFF_ROLES or table in SHARED_TABLES:
        return True
    owner_column = OWN_ROW_TABLES.get(table)
    return (
        owner_column is not None
        and row_filter is not None
        and row_filter.column == owner_column
        and row_filter.value == str(session['user_id'])
    )


@router.websocket('/realtime/{table}')
async def realtime_stream(websocket: WebSocket, table: str):
    token = websocket.cookies.get(SESSION_COOKIE) or websocket.query_params.get('token')
    session = validate_session_token(token)
    if not session:
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return
    try:
        row_filter = RowFilter.parse(websocket.query_params.get('filter'))
    except InvalidFilterError:
        await websocket.close(code=CLOSE_BAD_REQUEST)
        return
    if table not in REALTIME_TABLES:
        await websocket.close(code=CLOSE_BAD_REQUEST)
        return
    if not may_subscribe(session, table, row_filter):
        await websocket.close(code=CLOSE_FORBIDDEN)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_change(event: ChangeEvent) -> None:
        # Runs on the thread that committed the write.
        loop.call_soon_threadsafe(queue.put_nowait, event_message(event))

    subscription = change_feed.subscribe(table, on_change, row_filter)
    logger.info('realtime_ws_open table=%s user_id=%s', table, session['user_id'])
    receiver = asyncio.create_task(_drain_client(websocket))
    try:
        await websocket.send_json({'type': 'subscribed', 'table': table, 'filter': websocket.query_params.get('filter')})
        while not receiver.done():
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result())
            else:
                getter.cancel()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        receiver.cancel()
        logger.info('realtime_ws_closed table=%s user_id=%s', table, session['user_id'])


async def _drain_client(websocket: WebSocket) -> None:
    """Read until the client disconnects; inbound messages are ignored."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
