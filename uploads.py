"""Image uploads stored on local disk and served under /uploads."""

import os
import uuid
from typing import List, Optional

import structlog
from fastapi import UploadFile

from config import Settings
from errors import ValidationError

logger = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
MAX_FILES = 5
MAX_FILE_SIZE = 5 * 1024 * 1024


def _has_content(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def save_image(upload: UploadFile, settings: Settings) -> str:
    """Write one upload to the upload dir and return its stored filename."""
    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Images only! (jpg, jpeg, png, gif, webp)")

    data = upload.file.read(MAX_FILE_SIZE + 1)
    if len(data) > MAX_FILE_SIZE:
        raise ValidationError("File too large. Maximum size is 5MB.")

    os.makedirs(settings.upload_dir, exist_ok=True)
    filename = f"{uuid.uuid4().hex}{ext}"
    with open(os.path.join(settings.upload_dir, filename), "wb") as fh:
        fh.write(data)
    logger.debug("image_saved", filename=filename, size=len(data))
    return filename


def save_images(uploads: Optional[List[UploadFile]], settings: Settings) -> List[str]:
    files = [u for u in (uploads or []) if _has_content(u)]
    if len(files) > MAX_FILES:
        raise ValidationError(f"Too many files. Maximum is {MAX_FILES}.")
    paths = []
    try:
        for upload in files:
            paths.append(f"/uploads/{save_image(upload, settings)}")
    except ValidationError:
        discard_images(paths, settings)
        raise
    return paths


def discard_images(paths: List[str], settings: Settings) -> None:
    """Remove stored uploads, given their /uploads/ paths or bare filenames."""
    for path in paths:
        filename = os.path.basename(path)
        try:
            os.remove(os.path.join(settings.upload_dir, filename))
        except FileNotFoundError:
            continue
        logger.debug("image_discarded", filename=filename)
