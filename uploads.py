"""Local disk storage for uploaded images, served back under /uploads."""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_PREFIX = "/uploads"


def upload_root() -> Path:
    root = Path(UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    return root


def save_upload(upload: UploadFile) -> str:
    """Persist one uploaded file and return the path it is served from.

    File bytes are never inspected; only the original extension is kept.
    """
    suffix = Path(upload.filename or "").suffix.lower()
    name = f"{uuid.uuid4().hex}{suffix}"
    target = upload_root() / name
    with target.open("wb") as out:
        shutil.copyfileobj(upload.file, out)
    logger.info("Stored upload %s as %s", upload.filename, name)
    return f"{PUBLIC_PREFIX}/{name}"


def discard_upload(public_path: Optional[str]) -> None:
    """Remove a stored upload once no record points at it. Absolute URLs are left alone."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX + "/"):
        return
    target = Path(UPLOAD_DIR) / public_path[len(PUBLIC_PREFIX) + 1:]
    try:
        target.unlink()
    except FileNotFoundError:
        pass
