from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

from dormmate.config import settings
from dormmate.core.errors import NotFoundError


logger = logging.getLogger(__name__)

PUBLIC_PREFIX = '/storage/v1/object/public'
_SAFE_SEGMENT = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


class InvalidObjectNameError(ValueError):
    pass


def _check_segment(value: str, what: str) -> str:
    if not value or not _SAFE_SEGMENT.match(value) or '..' in value:
        raise InvalidObjectNameError(f'Invalid {what}: {value!r}')
    return value


def bucket_path(bucket: str) -> Path:
    return Path(settings.storage_root) / _check_segment(bucket, 'bucket')


def public_url(bucket: str, name: str) -> str:
    base = (settings.storage_public_base_url or settings.app_base_url).rstrip('/')
    return f'{base}{PUBLIC_PREFIX}/{bucket}/{name}'


def object_name_from_url(bucket: str, url: str) -> str | None:
    marker = f'{PUBLIC_PREFIX}/{bucket}/'
    _, found, name = (url or '').partition(marker)
    if not found or not name:
        return None
    return name


def random_object_name(filename: str) -> str:
    suffix = Path(filename or '').suffix.lower()
    if suffix and not _SAFE_SEGMENT.match(suffix[1:]):
        suffix = ''
    return f'{uuid.uuid4().hex}{suffix}'


def upload(bucket: str, filename: str, data: bytes) -> dict:
    """Store ``data`` under a random name that keeps the file extension."""
    directory = bucket_path(bucket)
    directory.mkdir(parents=True, exist_ok=True)
    name = random_object_name(filename)
    (directory / name).write_bytes(data)
    logger.info('storage_uploaded bucket=%s name=%s bytes=%s', bucket, name, len(data))
    return {'bucket': bucket, 'name': name, 'url': public_url(bucket, name)}


def resolve_object(bucket: str, name: str) -> Path:
    path = bucket_path(bucket) / _check_segment(name, 'object name')
    if not path.is_file():
        raise NotFoundError('Object not found')
    return path


def remove(bucket: str, name: str) -> bool:
    try:
        path = resolve_object(bucket, name)
    except NotFoundError:
        logger.info('storage_remove_missing bucket=%s name=%s', bucket, name)
        return False
    path.unlink()
    logger.info('storage_removed bucket=%s name=%s', bucket, name)
    return True
