import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from dormmate.config import settings


def _connect_args(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'check_same_thread': False}
    return {}


engine = create_engine(settings.database_url, connect_args=_connect_args(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_SLOW_QUERY_MS = settings.db_slow_query_ms
_slow_logger = logging.getLogger('dormmate.db.slow_query')


@event.listens_for(engine, 'before_cursor_execute')
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.perf_counter()


@event.listens_for(engine, 'after_cursor_execute')
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, '_query_start_time', None)
    if start is None:
        return
    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= _SLOW_QUERY_MS:
        sql_text = (statement or '').replace('\n', ' ').strip()
        _slow_logger.warning('slow_query duration_ms=%.2f sql=%s', duration_ms, sql_text)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@event.listens_for(Session, 'after_flush')
def _collect_realtime_changes(session, flush_context):
    from dormmate.realtime.hooks import collect_flush_changes

    collect_flush_changes(session)


@event.listens_for(Session, 'after_commit')
def _publish_realtime_changes(session):
    from dormmate.realtime.hooks import publish_committed

    publish_committed(session)


@event.listens_for(Session, 'after_rollback')
def _discard_realtime_changes(session):
    from dormmate.realtime.hooks import discard_pending

    discard_pending(session)
