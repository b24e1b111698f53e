"""Cover image storage on the local filesystem, served under ``/media``."""

from __future__ import annotations

import secrets
from pathlib import Path, PurePosixPath

from .config import settings

MEDIA_URL_PREFIX = "/media"
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "avif"}


class BlobStorageError(Exception):
    """Raised when an upload is rejected or cannot be written."""


def _extension(filename: str | None) -> str:
    name = (filename or "").strip()
    if "." not in name:
        raise BlobStorageError("Cover image needs a file extension")
    ext = name.rsplit(".", 1)[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise BlobStorageError(f"Unsupported image type: .{ext}")
    return ext


def save_cover(
    user_id: str,
    filename: str | None,
    data: bytes,
    *,
    media_dir: Path | None = None,
    max_bytes: int | None = None,
) -> str:
    """Store an uploaded cover and return its public URL.

    Files land at ``covers/<user_id>/<random>.<ext>`` below the media root.
    """
    ext = _extension(filename)
    limit = max_bytes if max_bytes is not None else settings.max_cover_bytes
    if not data:
        raise BlobStorageError("Cover image is empty")
    if len(data) > limit:
        raise BlobStorageError(
            f"Cover image is too large (limit {limit // 1024} KB)"
        )
    root = Path(media_dir or settings.media_dir)
    relative = PurePosixPath("covers", user_id, f"{secrets.token_hex(12)}.{ext}")
    target = root.joinpath(*relative.parts)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as exc:
        raise BlobStorageError(f"Could not store cover image: {exc}") from exc
    return public_url(relative)


def public_url(relative: PurePosixPath | str) -> str:
    return f"{MEDIA_URL_PREFIX}/{PurePosixPath(relative).as_posix()}"
