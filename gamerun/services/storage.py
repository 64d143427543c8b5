"""Local object storage for images and quest PDFs, served by the API under UPLOAD_URL_PREFIX."""
from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import config
from gamerun.services.errors import WorkflowError

logger = logging.getLogger("gamerun.storage")

IMAGE_FOLDER = "gamerun"
PDF_FOLDER = "quest-pdfs"


@dataclass
class StoredFile:
    path: str  # relative to UPLOAD_DIR, posix separators
    url: str


def _root() -> Path:
    root = Path(config.UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    return root


def _ensure_within_root(target: Path) -> None:
    root = _root().resolve()
    if root not in target.resolve().parents:
        raise WorkflowError("Invalid storage path")


def _extension(filename: str, content_type: str) -> str:
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
        if ext.isalnum():
            return ext
    guessed = mimetypes.guess_extension(content_type) or ""
    return guessed.lstrip(".") or "bin"


def public_url(path: str) -> str:
    return f"{config.UPLOAD_URL_PREFIX.rstrip('/')}/{path}"


def _save(folder: str, filename: str, content_type: str, data: bytes) -> StoredFile:
    relative = f"{folder}/{uuid.uuid4().hex}.{_extension(filename, content_type)}"
    target = _root() / relative
    _ensure_within_root(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    logger.info("Stored %s (%d bytes, %s)", relative, len(data), content_type)
    return StoredFile(path=relative, url=public_url(relative))


def save_image(filename: str, content_type: Optional[str], data: bytes) -> StoredFile:
    """Only image/* up to MAX_IMAGE_BYTES."""
    if not content_type or not content_type.startswith("image/"):
        raise WorkflowError("Only image files are allowed")
    if not data:
        raise WorkflowError("Empty file")
    if len(data) > config.MAX_IMAGE_BYTES:
        raise WorkflowError(f"Image exceeds the maximum size of {config.MAX_IMAGE_BYTES // (1024 * 1024)} MB")
    return _save(IMAGE_FOLDER, filename, content_type, data)


def save_pdf(filename: str, content_type: Optional[str], data: bytes) -> StoredFile:
    if content_type != "application/pdf":
        raise WorkflowError("Only PDF files are allowed")
    if not data:
        raise WorkflowError("Empty file")
    if len(data) > config.MAX_PDF_BYTES:
        raise WorkflowError(f"PDF exceeds the maximum size of {config.MAX_PDF_BYTES // (1024 * 1024)} MB")
    return _save(PDF_FOLDER, filename, content_type, data)


def delete(path: str) -> bool:
    """Remove a stored file by its relative path. Returns False when nothing was there."""
    if not path:
        return False
    target = _root() / path
    _ensure_within_root(target)
    if target.is_file():
        target.unlink()
        logger.info("Deleted %s", path)
        return True
    return False


def delete_by_url(url: str) -> bool:
    prefix = config.UPLOAD_URL_PREFIX.rstrip("/") + "/"
    if not url or not url.startswith(prefix):
        return False
    return delete(url[len(prefix):])
