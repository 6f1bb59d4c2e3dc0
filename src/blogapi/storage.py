"""Local file storage for post banners."""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from .config import settings
from .errors import ValidationFailed

logger = logging.getLogger(__name__)

BANNER_DIR = "banners"

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def storage_root() -> Path:
    root = Path(settings.upload_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root


def public_url(relative_path: Optional[str]) -> Optional[str]:
    if not relative_path:
        return None
    return f"{settings.storage_url.rstrip('/')}/{relative_path}"


def validate_banner(upload: UploadFile) -> bytes:
    """Read the uploaded banner and check its type and size."""
    content_type = (upload.content_type or "").lower()
    if content_type not in settings.allowed_banner_types:
        raise ValidationFailed.for_field("banner", "The banner must be an image.")

    limit = settings.max_banner_size_kb * 1024
    data = upload.file.read(limit + 1)
    if not data:
        raise ValidationFailed.for_field("banner", "The banner must not be empty.")
    if len(data) > limit:
        raise ValidationFailed.for_field(
            "banner",
            f"The banner may not be greater than {settings.max_banner_size_kb} kilobytes.",
        )
    return data


def store_banner(upload: UploadFile) -> str:
    """Persist a banner under a generated name and return its relative path."""
    data = validate_banner(upload)
    suffix = _EXTENSIONS.get((upload.content_type or "").lower())
    if suffix is None:
        suffix = Path(upload.filename or "").suffix.lower() or ".img"
    relative = f"{BANNER_DIR}/{uuid.uuid4().hex}{suffix}"
    target = storage_root() / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "wb") as fh:
        fh.write(data)
    logger.info("stored banner %s (%d bytes)", relative, len(data))
    return relative


def delete_banner(relative_path: Optional[str]) -> None:
    """Remove a stored banner; missing files are ignored."""
    if not relative_path:
        return
    target = storage_root() / relative_path
    try:
        os.remove(target)
        logger.info("deleted banner %s", relative_path)
    except FileNotFoundError:
        logger.warning("banner %s already missing", relative_path)
    except OSError:
        logger.exception("could not delete banner %s", relative_path)
