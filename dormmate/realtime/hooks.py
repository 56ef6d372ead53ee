from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from dormmate.realtime.feed import DELETE, INSERT, REALTIME_TABLES, UPDATE, ChangeEvent, change_feed


logger = logging.getLogger(__name__)

PENDING_KEY = 'realtime_pending_changes'


def row_dict(obj: Any) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def _pre_flush_row(obj: Any) -> dict[str, Any]:
    state = inspect(obj)
    row = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            row[attr.key] = history.deleted[0]
        elif history.added:
            # Changed from an unset or NULL value.
            row[attr.key] = None
        elif history.unchanged:
            row[attr.key] = history.unchanged[0]
        else:
            row[attr.key] = getattr(obj, attr.key)
    return row


def _table_of(obj: Any) -> str | None:
    return getattr(obj, '__tablename__', None)


def record_change(
    session: Session,
    table: str,
    event_type: str,
    *,
    new: dict[str, Any] | None = None,
    old: dict[str, Any] | None = None,
) -> None:
    """Queue a change for publication once ``session`` commits.

    ORM flushes are captured automatically; core INSERT/UPDATE statements
    must call this themselves.
    """
    if table not in REALTIME_TABLES:
        return
    session.info.setdefault(PENDING_KEY, []).append(
        ChangeEvent(table=table, event_type=event_type, new=dict(new or {}), old=dict(old or {}))
    )


def collect_flush_changes(session: Session) -> None:
    for obj in session.new:
        table = _table_of(obj)
        if table in REALTIME_TABLES:
            record_change(session, table, INSERT, new=row_dict(obj))
    for obj in session.dirty:
        table = _table_of(obj)
        if table in REALTIME_TABLES and session.is_modified(obj, include_collections=False):
            record_change(session, table, UPDATE, new=row_dict(obj), old=_pre_flush_row(obj))
    for obj in session.deleted:
        table = _table_of(obj)
        if table in REALTIME_TABLES:
            record_change(session, table, DELETE, old=_pre_flush_row(obj))


def publish_committed(session: Session) -> None:
    pending = session.info.pop(PENDING_KEY, [])
    for change in pending:
        change_feed.publish(change)
    if pending:
        logger.debug('realtime_published count=%s', len(pending))


def discard_pending(session: Session) -> None:
    session.info.pop(PENDING_KEY, None)
