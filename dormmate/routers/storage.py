from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from dormmate.core.errors import NotFoundError
from dormmate.services import storage_service
from dormmate.services.storage_service import InvalidObjectNameError


router = APIRouter(prefix=storage_service.PUBLIC_PREFIX, tags=['Storage'])


@router.get('/{bucket}/{name}')
def storage_public_object(bucket: str, name: str):
    try:
        path = storage_service.resolve_object(bucket, name)
    except (NotFoundError, InvalidObjectNameError) as exc:
        raise HTTPException(status_code=404, detail='Object not found') from exc
    return FileResponse(path)
