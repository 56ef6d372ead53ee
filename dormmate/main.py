from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from dormmate.assistant.conversation import ConversationStore
from dormmate.assistant.registry import configured_backend
from dormmate.config import settings
from dormmate.db import Base, SessionLocal, engine
from dormmate.routers import assistant, attendance, auth, bookings, hostels, mess_menu, pages, realtime, rooms, storage, students
from dormmate.services.attendance_service import CheckoutNotifier
from dormmate.services.auth_service import ensure_admin_account
from dormmate.session_middleware import SessionAuthMiddleware

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_admin_account(db)
    finally:
        db.close()
    notifier = CheckoutNotifier(SessionLocal)
    notifier.start()
    app.state.checkout_notifier = notifier
    app.state.conversations = ConversationStore(configured_backend)
    yield
    notifier.stop()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.add_middleware(SessionAuthMiddleware)


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('dormmate.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response

app.include_router(auth.router)
app.include_router(pages.router)
app.include_router(students.router)
app.include_router(rooms.router)
app.include_router(bookings.router)
app.include_router(mess_menu.router)
app.include_router(attendance.router)
app.include_router(hostels.router)
app.include_router(hostels.admin_router)
app.include_router(storage.router)
app.include_router(assistant.router)
app.include_router(realtime.router)


@app.get('/health')
def healthcheck():
    return {'app': settings.app_name, 'status': 'ok'}
