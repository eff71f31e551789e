"""
File storage on the local filesystem.

One directory per bucket under STORAGE_DIR; files are served by the API under
/storage/<bucket>/<path>, so the stored value is the public URL.
"""
from __future__ import annotations

import logging
import mimetypes
import time
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator

from .config import MAX_UPLOAD_MB, PUBLIC_BASE_URL, STORAGE_DIR

logger = logging.getLogger(__name__)

PROFILE_IMAGES = "profile-images"
GYM_IMAGES = "gym-images"
MEDICAL_RECORDS = "medical-records"
MEDICAL_DOCUMENTS = "medical-documents"

BUCKETS = (PROFILE_IMAGES, GYM_IMAGES, MEDICAL_RECORDS, MEDICAL_DOCUMENTS)


def _bucket_dir(bucket: str) -> Path:
    if bucket not in BUCKETS:
        raise ValueError(f"Unknown storage bucket: {bucket}")
    return STORAGE_DIR / bucket


def _safe_relative(path: str) -> PurePosixPath:
    rel = PurePosixPath(path.strip("/"))
    if not rel.parts or ".." in rel.parts:
        raise ValueError(f"Invalid storage path: {path!r}")
    return rel


def is_allowed_type(filename: str, content_type: str | None = None) -> bool:
    """image/* and application/pdf only."""
    kind = content_type or mimetypes.guess_type(filename)[0] or ""
    return kind.startswith("image/") or kind == "application/pdf"


def public_url(bucket: str, path: str) -> str:
    return f"{PUBLIC_BASE_URL}/storage/{bucket}/{_safe_relative(path)}"


def local_path(bucket: str, path: str) -> Path:
    return _bucket_dir(bucket) / _safe_relative(path)


def upload_file(bucket: str, path: str, filename: str, content: bytes, content_type: str | None = None) -> str:
    """
    Store `content` as <path>/<leaf-of-path>-<ms>.<ext> inside the bucket.
    Returns the public URL.
    """
    if not filename:
        raise ValueError("File name is required.")
    if len(content) > MAX_UPLOAD_MB * 1024 * 1024:
        raise ValueError(f"File too large. Maximum size is {MAX_UPLOAD_MB}MB.")
    if not is_allowed_type(filename, content_type):
        raise ValueError("Only images and PDF files are accepted.")

    rel_dir = _safe_relative(path)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    stamp = int(time.time() * 1000)
    while (_bucket_dir(bucket) / rel_dir / f"{rel_dir.name}-{stamp}.{ext}").exists():
        stamp += 1
    rel = rel_dir / f"{rel_dir.name}-{stamp}.{ext}"

    target = _bucket_dir(bucket) / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)

    logger.info("Uploaded %s to %s/%s (%d bytes)", filename, bucket, rel, len(content))
    return public_url(bucket, str(rel))


def delete_file(bucket: str, file_path: str) -> bool:
    """Accepts a public URL or a bucket-relative path. False if the file was already gone."""
    if "://" in file_path:
        marker = f"/storage/{bucket}/"
        if marker not in file_path:
            raise ValueError(f"File is not in bucket {bucket}: {file_path}")
        path = file_path.split(marker, 1)[1]
    else:
        path = file_path
    target = local_path(bucket, path)
    if not target.exists():
        logger.warning("Storage file not found: %s/%s", bucket, path)
        return False
    target.unlink()
    logger.info("Deleted %s/%s", bucket, path)
    return True


@contextmanager
def staged_upload(
    bucket: str, path: str, filename: str, content: bytes, content_type: str | None = None
) -> Iterator[str]:
    """
    Upload a file whose row is written inside the block.
    If the block raises, the file is removed again.
    """
    url = upload_file(bucket, path, filename, content, content_type)
    try:
        yield url
    except Exception:
        logger.warning("Row for %s was not saved, removing the upload", url)
        delete_file(bucket, url)
        raise
