from __future__ import annotations

from typing import Any, Iterable


def _lookup(row: Any, field: str) -> Any:
    value = row
    for part in field.split('.'):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def matches_search(row: Any, query: str, fields: Iterable[str]) -> bool:
    """Case-insensitive substring match of ``query`` against any of ``fields``.

    Fields may be dotted (``user.full_name``) to reach into joined rows.
    An empty query matches everything.
    """
    needle = (query or '').strip().lower()
    if not needle:
        return True
    for field in fields:
        value = _lookup(row, field)
        if value is None:
            continue
        if needle in str(value).lower():
            return True
    return False


def filter_rows(rows: list, query: str, fields: Iterable[str]) -> list:
    field_list = list(fields)
    return [row for row in rows if matches_search(row, query, field_list)]


EMPTY_MESSAGE = 'No records found'


def list_response(rows: list, query: str = '', fields: Iterable[str] = ()) -> dict:
    visible = filter_rows(rows, query, fields)
    payload = {'rows': visible, 'count': len(visible), 'total': len(rows), 'empty': not visible}
    if not visible:
        payload['message'] = EMPTY_MESSAGE
    return payload
