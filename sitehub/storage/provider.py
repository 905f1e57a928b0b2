from typing import BinaryIO

ITEM_PHOTOS_BUCKET = "item-photos"
BUILDING_CONTROL_BUCKET = "building-control-photos"


class StorageProvider:
    """Object storage addressed by (bucket, path)."""

    def upload(self, bucket: str, path: str, data: bytes | BinaryIO, content_type: str) -> None:
        raise NotImplementedError

    def get_public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    def exists(self, bucket: str, path: str) -> bool:
        raise NotImplementedError

    def delete(self, bucket: str, path: str) -> None:
        raise NotImplementedError
