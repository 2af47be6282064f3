"""Serves stored files when no CDN is configured."""

import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from sitelog.app.services.blob_store import BlobStore, get_blob_store

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/{key:path}")
async def get_stored_file(
    key: str,
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    """Stream a stored file by key. Legacy prefixes are accepted; traversal is rejected."""
    data = await blob_store.download(key)
    media_type, _ = mimetypes.guess_type(key)
    return Response(content=data, media_type=media_type or "application/octet-stream")
