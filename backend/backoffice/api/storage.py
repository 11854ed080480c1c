"""Download route for short-lived signed storage URLs."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Response

from backoffice.core.errors import DependencyFailure, NotFound
from backoffice.services.storage import (
    BlobNotFound,
    BlobStore,
    BlobStoreError,
    get_blob_store,
    read_signed_token,
)

router = APIRouter(prefix="/api/v1/storage", tags=["storage"])
logger = structlog.get_logger()


@router.get("/signed")
async def download_signed(
    store: Annotated[BlobStore, Depends(get_blob_store)],
    token: str = Query(...),
) -> Response:
    """Serve the object a signed URL points at; the token is the only credential."""
    try:
        bucket, path = read_signed_token(token)
        data = await store.download(bucket, path)
    except BlobNotFound as exc:
        raise NotFound("File not found") from exc
    except BlobStoreError as exc:
        logger.error("signed_download_failed", error=str(exc))
        raise DependencyFailure() from exc

    filename = path.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
