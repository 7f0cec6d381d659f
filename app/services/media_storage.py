"""Local media storage for report uploads.

Files are content-addressed: the reference stored on a report is
``<sha256>.<ext>`` relative to ``MEDIA_ROOT``.
"""
from __future__ import annotations

import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from app.config import get_settings

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
VIDEO_MIME_TYPES = frozenset(
    {"video/mp4", "video/avi", "video/mov", "video/quicktime", "video/wmv", "video/x-ms-wmv"}
)
ALLOWED_MIME_TYPES = IMAGE_MIME_TYPES | VIDEO_MIME_TYPES

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/avi": ".avi",
    "video/mov": ".mov",
    "video/quicktime": ".mov",
    "video/wmv": ".wmv",
    "video/x-ms-wmv": ".wmv",
}


@dataclass(frozen=True)
class StoredMedia:
    ref: str
    sha256: str
    mime_type: str
    size: int


def media_root() -> Path:
    return Path(get_settings().MEDIA_ROOT)


def save_media(data: bytes, mime_type: str) -> StoredMedia:
    """Persist ``data`` and return its reference; identical uploads share one file."""

    digest = hashlib.sha256(data).hexdigest()
    ref = f"{digest}{_EXTENSIONS.get(mime_type, '.bin')}"
    root = media_root()
    root.mkdir(parents=True, exist_ok=True)
    path = root / ref
    if not path.exists():
        path.write_bytes(data)
        logger.info("Media stored", extra={"sha256": digest, "mime_type": mime_type, "size": len(data)})
    return StoredMedia(ref=ref, sha256=digest, mime_type=mime_type, size=len(data))


def guess_mime_type(ref: str) -> str:
    guessed, _ = mimetypes.guess_type(ref)
    if guessed == "video/x-msvideo":
        return "video/avi"
    return guessed or "application/octet-stream"


def load_media(ref: str) -> tuple[bytes, str]:
    """Read a stored media item back; raises ``FileNotFoundError`` when it is gone."""

    path = (media_root() / ref).resolve()
    if media_root().resolve() not in path.parents:
        raise FileNotFoundError(ref)
    return path.read_bytes(), guess_mime_type(ref)


__all__ = [
    "ALLOWED_MIME_TYPES",
    "IMAGE_MIME_TYPES",
    "VIDEO_MIME_TYPES",
    "StoredMedia",
    "guess_mime_type",
    "load_media",
    "save_media",
]
