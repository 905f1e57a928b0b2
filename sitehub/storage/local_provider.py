"""
Local filesystem storage provider for development and tests.
Buckets are subdirectories of the base directory.
"""
from typing import BinaryIO, Optional
from pathlib import Path
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider


logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_path(self, bucket: str, path: str) -> Path:
        """Get the local filesystem path for a bucket/path pair."""
        clean_bucket = bucket.strip("/").replace("..", "").replace("\\", "/")
        clean_path = path.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / clean_bucket / clean_path

    def resolve_key(self, key: str) -> Optional[Path]:
        """Map a `bucket/path` key to a file inside the base directory, or None."""
        bucket, _, path = key.lstrip("/").partition("/")
        if not bucket or not path:
            return None
        candidate = self._get_path(bucket, path).resolve()
        if not str(candidate).startswith(str(self.base_dir.resolve())):
            return None
        return candidate

    def upload(self, bucket: str, path: str, data: bytes | BinaryIO, content_type: str) -> None:
        target = self._get_path(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            if hasattr(data, "read"):
                f.write(data.read())
            else:
                f.write(data)
        logger.info("storage.local.uploaded", bucket=bucket, path=path, content_type=content_type)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{settings.public_base_url}/files/local/{quote(bucket)}/{quote(path.lstrip('/'))}"

    def exists(self, bucket: str, path: str) -> bool:
        return self._get_path(bucket, path).exists()

    def delete(self, bucket: str, path: str) -> None:
        target = self._get_path(bucket, path)
        if target.exists():
            target.unlink()
