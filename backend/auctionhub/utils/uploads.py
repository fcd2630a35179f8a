"""Validation and storage of item photo uploads."""

from __future__ import annotations

import io
import uuid
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..errors import BadRequest, UnsupportedMedia

ALLOWED_FORMATS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp"}


def validate_upload_filename(filename: str) -> None:
    if not filename or len(filename) > 200:
        raise BadRequest("invalid filename")
    if "/" in filename or "\\" in filename:
        raise BadRequest("invalid filename path")


def read_limited(fileobj, max_bytes: int) -> bytes:
    """Read at most `max_bytes` from an upload, rejecting anything larger."""
    payload = fileobj.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise BadRequest(f"Image file size cannot exceed {max_bytes // (1024 * 1024)}MB")
    if not payload:
        raise BadRequest("Image file is required")
    return payload


def sniff_image_format(payload: bytes) -> str:
    """Return the Pillow format name of `payload` or raise if it is not an allowed image."""
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise UnsupportedMedia("Only JPEG, PNG, and WebP images are allowed")
    if fmt not in ALLOWED_FORMATS:
        raise UnsupportedMedia("Only JPEG, PNG, and WebP images are allowed")
    return fmt


def store_item_photo(payload: bytes, fmt: str, upload_dir: Path, item_id: int) -> str:
    """Write the image under `upload_dir/items/` and return its public path."""
    target_dir = upload_dir / "items"
    target_dir.mkdir(parents=True, exist_ok=True)
    name = f"{item_id}-{uuid.uuid4().hex}{ALLOWED_FORMATS[fmt]}"
    (target_dir / name).write_bytes(payload)
    return f"/uploads/items/{name}"
