import os
from urllib.parse import quote

from fastapi import APIRouter, Depends, Response

from dependencies import get_store
from services.sync import SyncStore

router = APIRouter(prefix="/files", tags=["Files"])


def _original_name(path: str) -> str:
    # Stored names look like "<timestamp>-<suffix>-<original name>"
    stored = os.path.basename(path)
    parts = stored.split("-", 2)
    return parts[2] if len(parts) == 3 and parts[0].isdigit() else stored


@router.get("/{bucket}/{path:path}")
async def download_file(bucket: str, path: str, store: SyncStore = Depends(get_store)):
    """Download a submitted file under its original name"""
    data = await store.storage.download(bucket, path)
    filename = quote(_original_name(path))
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"}
    )
