from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

from dormmate.core.notices import Notice
from dormmate.core.search import filter_rows
from dormmate.realtime.feed import DELETE, ChangeEvent, ChangeFeed, RowFilter, Subscription, change_feed


logger = logging.getLogger(__name__)

Row = dict[str, Any]


class LiveCollection:
    """In-memory slice of one table kept consistent with the change feed.

    Client-side helper for list views and scripts embedding the service; the
    HTTP routers re-read from the database instead. ``start`` performs a single bulk fetch and subscribes to the table;
    change events are applied to the held rows one at a time instead of
    re-reading the whole table. ``refresh`` re-runs the bulk fetch and is
    meant for use right after a local write. ``stop`` must be called when
    the consumer goes away.
    """

    def __init__(
        self,
        table: str,
        fetch: Callable[[], list[Row]],
        *,
        feed: ChangeFeed = change_feed,
        key: str = 'id',
        row_filter: str | RowFilter | None = None,
        search_fields: Iterable[str] = (),
        sort_key: Callable[[Row], Any] | None = None,
        reverse: bool = False,
        enrich: Callable[[Row], Row] | None = None,
    ) -> None:
        self.table = table
        self._fetch = fetch
        self._feed = feed
        self._key = key
        self._row_filter = RowFilter.parse(row_filter) if isinstance(row_filter, str) else row_filter
        self._search_fields = tuple(search_fields)
        self._sort_key = sort_key
        self._reverse = reverse
        self._enrich = enrich
        self._lock = threading.RLock()
        self._rows: list[Row] = []
        self._subscription: Subscription | None = None
        self.notices: list[Notice] = []
        self.loaded = False

    @property
    def rows(self) -> list[Row]:
        with self._lock:
            return list(self._rows)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._rows

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> 'LiveCollection':
        self.refresh()
        if self._subscription is None:
            self._subscription = self._feed.subscribe(self.table, self.apply, filter=self._row_filter)
        return self

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def __enter__(self) -> 'LiveCollection':
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def refresh(self) -> bool:
        try:
            fetched = self._fetch()
        except Exception as exc:
            logger.warning('live_collection_fetch_failed table=%s error=%s', self.table, exc)
            self.notices.append(Notice.error(str(exc) or 'Failed to load records', title=f'Error fetching {self.table}'))
            return False
        with self._lock:
            self._rows = [dict(row) for row in fetched or []]
            self._sort()
            self.loaded = True
        return True

    def apply(self, event: ChangeEvent) -> None:
        if event.table != self.table:
            return
        key_value = event.row.get(self._key)
        if key_value is None:
            return
        with self._lock:
            index = self._index_of(key_value)
            if event.event_type == DELETE or (
                self._row_filter is not None and not self._row_filter.matches_row(event.new)
            ):
                if index is not None:
                    self._rows.pop(index)
                return
            if index is not None:
                merged = dict(self._rows[index])
                merged.update(event.new)
                self._rows[index] = merged
            else:
                row = dict(event.new)
                if self._enrich is not None:
                    row = self._enrich(row)
                self._rows.append(row)
            self._sort()

    def search(self, query: str, fields: Iterable[str] | None = None) -> list[Row]:
        return filter_rows(self.rows, query, self._search_fields if fields is None else fields)

    def dismiss_notices(self) -> None:
        self.notices.clear()

    def _index_of(self, key_value: Any) -> int | None:
        for idx, row in enumerate(self._rows):
            if row.get(self._key) == key_value:
                return idx
        return None

    def _sort(self) -> None:
        if self._sort_key is not None:
            self._rows.sort(key=self._sort_key, reverse=self._reverse)
