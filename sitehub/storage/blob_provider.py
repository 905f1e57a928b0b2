from typing import BinaryIO

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import settings
from .provider import StorageProvider


class BlobStorageProvider(StorageProvider):
    """Azure Blob storage; buckets become key prefixes in one public-read container."""

    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def _client(self, bucket: str, path: str):
        return self._service.get_blob_client(self._container, f"{bucket.strip('/')}/{path.lstrip('/')}")

    def upload(self, bucket: str, path: str, data: bytes | BinaryIO, content_type: str) -> None:
        self._client(bucket, path).upload_blob(
            data,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type),
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        return self._client(bucket, path).url

    def exists(self, bucket: str, path: str) -> bool:
        return self._client(bucket, path).exists()

    def delete(self, bucket: str, path: str) -> None:
        try:
            self._client(bucket, path).delete_blob()
        except ResourceNotFoundError:
            pass
