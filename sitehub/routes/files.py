from mimetypes import guess_type

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from ..storage.local_provider import LocalStorageProvider


router = APIRouter(prefix="/files", tags=["files"])


@router.get("/local/{file_path:path}")
def serve_local_file(file_path: str):
    """Serve files from local storage for development."""
    local_storage = LocalStorageProvider()
    # Security: None when the key escapes the storage directory
    target = local_storage.resolve_key(file_path)
    if target is None:
        raise HTTPException(status_code=403, detail="Access denied")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    content_type = guess_type(str(target))[0] or "application/octet-stream"
    return FileResponse(path=str(target), media_type=content_type, filename=target.name)
