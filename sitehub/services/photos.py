"""
Photo uploads for items and building-control reports.
Images are downscaled and re-encoded as JPEG before they reach storage.
"""
import io
import os
import uuid
from datetime import datetime
from typing import Tuple

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError
from slugify import slugify

from ..config import settings
from ..storage.provider import StorageProvider
from .errors import ValidationFailed


logger = structlog.get_logger(__name__)

MAX_UPLOAD_BYTES = 15 * 1024 * 1024
EXIF_ORIENTATION = 0x0112


def optimize_image_bytes(image_bytes: bytes) -> Tuple[bytes, str]:
    """
    Downscale and re-encode a photo.

    Returns:
        (bytes, content_type). The original bytes are kept when the image
        needed no resizing or reorienting and re-encoding would not make it
        smaller.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError):
        raise ValidationFailed("Uploaded file is not a supported image")

    original_format = (img.format or "").upper()
    original_type = Image.MIME.get(original_format, "application/octet-stream")
    if not settings.photo_optimize_enabled:
        return image_bytes, original_type

    # Phone cameras store rotation as an EXIF tag that JPEG re-encoding drops
    reoriented = img.getexif().get(EXIF_ORIENTATION, 1) != 1
    if reoriented:
        img = ImageOps.exif_transpose(img)

    # Convert to RGB (removes alpha channel if present)
    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        rgb_img = Image.new("RGB", img.size, (255, 255, 255))
        rgb_img.paste(img, mask=img.split()[-1])
        img = rgb_img
    elif img.mode != "RGB":
        img = img.convert("RGB")

    width, height = img.size
    max_dim = settings.photo_max_dim
    resized = max(width, height) > max_dim
    if resized:
        if width > height:
            new_size = (max_dim, int((height * max_dim) / width))
        else:
            new_size = (int((width * max_dim) / height), max_dim)
        img = img.resize(new_size, Image.Resampling.LANCZOS)

    output = io.BytesIO()
    img.save(output, format="JPEG", quality=settings.photo_jpeg_quality, optimize=True, progressive=True)
    optimized = output.getvalue()

    if not resized and not reoriented and len(optimized) >= len(image_bytes) and original_format in ("JPEG", "PNG"):
        return image_bytes, original_type

    logger.info(
        "photo.optimized",
        original_size=len(image_bytes),
        optimized_size=len(optimized),
        original_dimensions=f"{width}x{height}",
        optimized_dimensions=f"{img.width}x{img.height}",
    )
    return optimized, "image/jpeg"


def photo_path(original_name: str, content_type: str, prefix: str = "") -> str:
    """Unique object path, e.g. `site-slug/2024-05-01_ab12cd34-crane.jpg`."""
    stem = slugify(os.path.splitext(original_name or "photo")[0]) or "photo"
    ext = ".jpg" if content_type == "image/jpeg" else (os.path.splitext(original_name or "")[1].lower() or ".bin")
    today = datetime.utcnow().strftime("%Y-%m-%d")
    name = f"{today}_{uuid.uuid4().hex[:8]}-{stem}{ext}"
    return f"{slugify(prefix)}/{name}" if prefix else name


def store_photo(
    storage: StorageProvider,
    bucket: str,
    data: bytes,
    original_name: str,
    prefix: str = "",
) -> Tuple[str, str]:
    """Optimize and upload a photo. Returns (path, public_url)."""
    if not data:
        raise ValidationFailed("Empty file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("File too large")
    payload, content_type = optimize_image_bytes(data)
    path = photo_path(original_name, content_type, prefix)
    storage.upload(bucket, path, payload, content_type)
    return path, storage.get_public_url(bucket, path)
