from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable


logger = logging.getLogger(__name__)

REALTIME_TABLES = ('attendance', 'bookings', 'rooms', 'mess_menu', 'users', 'hostels')

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'
EVENT_TYPES = (INSERT, UPDATE, DELETE)


class InvalidFilterError(ValueError):
    pass


@dataclass(frozen=True)
class RowFilter:
    """Equality filter in the ``column=eq.value`` form."""

    column: str
    value: str

    @classmethod
    def parse(cls, text: str | None) -> 'RowFilter | None':
        raw = (text or '').strip()
        if not raw:
            return None
        column, sep, rest = raw.partition('=')
        if not sep or not column.strip():
            raise InvalidFilterError(f'Invalid filter: {raw}')
        operator, dot, value = rest.partition('.')
        if not dot or operator != 'eq':
            raise InvalidFilterError(f'Unsupported filter operator in: {raw}')
        return cls(column=column.strip(), value=value)

    def matches_row(self, row: dict[str, Any] | None) -> bool:
        if not row or self.column not in row:
            return False
        value = row.get(self.column)
        if isinstance(value, bool):
            return str(value).lower() == self.value.lower()
        return str(value) == self.value

    def matches(self, event: 'ChangeEvent') -> bool:
        return self.matches_row(event.new) or self.matches_row(event.old)


@dataclass
class ChangeEvent:
    table: str
    event_type: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    committed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def row(self) -> dict[str, Any]:
        return self.new or self.old

    def as_payload(self) -> dict[str, Any]:
        return {
            'schema': 'public',
            'table': self.table,
            'eventType': self.event_type,
            'new': self.new,
            'old': self.old,
            'commit_timestamp': self.committed_at,
        }


ChangeHandler = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: 'ChangeFeed', sub_id: int, table: str, handler: ChangeHandler, row_filter: RowFilter | None):
        self._feed = feed
        self.id = sub_id
        self.table = table
        self.handler = handler
        self.row_filter = row_filter
        self.active = True

    def wants(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.row_filter is None:
            return True
        return self.row_filter.matches(event)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self._feed._remove(self)
        self.active = False


class ChangeFeed:
    """Per-table fan-out of committed row changes to in-process subscribers."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._subscriptions: dict[str, dict[int, Subscription]] = {}

    def subscribe(self, table: str, handler: ChangeHandler, filter: str | RowFilter | None = None) -> Subscription:
        if table not in REALTIME_TABLES:
            raise ValueError(f'Table {table} has no change feed')
        row_filter = filter if isinstance(filter, RowFilter) or filter is None else RowFilter.parse(filter)
        with self._lock:
            subscription = Subscription(self, next(self._ids), table, handler, row_filter)
            self._subscriptions.setdefault(table, {})[subscription.id] = subscription
        logger.debug('realtime_subscribed table=%s id=%s', table, subscription.id)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.get(subscription.table, {}).pop(subscription.id, None)
        logger.debug('realtime_unsubscribed table=%s id=%s', subscription.table, subscription.id)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(table, {}))

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = [sub for sub in self._subscriptions.get(event.table, {}).values() if sub.wants(event)]
        delivered = 0
        for subscription in targets:
            try:
                subscription.handler(event)
                delivered += 1
            except Exception:
                # Subscriber failures stay isolated from the writer and other subscribers.
                logger.exception('realtime_handler_failed table=%s id=%s', event.table, subscription.id)
        return delivered


change_feed = ChangeFeed()
