"""
Signed file downloads
"""

import mimetypes

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from spendlog.api.deps import get_storage
from spendlog.core.exceptions import NotAuthenticatedError
from spendlog.services.storage import LocalBlobStorage

router = APIRouter()

@router.get("/{bucket}/{path:path}")
async def download_file(
    bucket: str,
    path: str,
    token: str = Query(...),
    blob_storage: LocalBlobStorage = Depends(get_storage)
):
    """
    Serve a stored object to anyone holding a valid signed link
    """
    signed_bucket, signed_path = blob_storage.verify_signed_token(token)
    if (signed_bucket, signed_path) != (bucket, path):
        raise NotAuthenticatedError("Invalid or expired link")

    data = await blob_storage.download(bucket, path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
