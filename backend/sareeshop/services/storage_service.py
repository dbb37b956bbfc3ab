# Overview: Service-layer operations for item image storage; saves uploads and hands back public paths.

"""
Item image storage.

Images live in a single flat folder (UPLOAD_FOLDER, relative to the instance
folder unless absolute) and are served back by the items blueprint under
IMAGE_URL_PREFIX. Stored names are generated, never taken from the client.
"""

from __future__ import annotations

import logging
import os
import secrets
import time
from pathlib import Path

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..validation import ValidationError

logger = logging.getLogger(__name__)

IMAGE_URL_PREFIX = "/api/items/images"


def image_directory() -> Path:
    folder = Path(current_app.config["UPLOAD_FOLDER"])
    if not folder.is_absolute():
        folder = Path(current_app.instance_path) / folder
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def _extension(filename: str) -> str:
    cleaned = secure_filename(filename or "")
    if "." not in cleaned:
        return ""
    return cleaned.rsplit(".", 1)[1].lower()


def upload_image(upload: FileStorage | None) -> str | None:
    """
    Persist an uploaded image and return its public path.

    Returns None when no file was sent (empty multipart field).
    Raises ValidationError for a disallowed extension.
    """
    if upload is None or not upload.filename:
        return None

    ext = _extension(upload.filename)
    allowed = current_app.config["ALLOWED_IMAGE_EXTENSIONS"]
    if ext not in allowed:
        raise ValidationError(f"image must be one of: {', '.join(sorted(allowed))}")

    stored_name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"
    target = image_directory() / stored_name
    upload.save(str(target))
    logger.info("Stored item image %s (%s)", stored_name, upload.mimetype)
    return f"{IMAGE_URL_PREFIX}/{stored_name}"


def delete_image(image_path: str | None) -> bool:
    """Remove a previously uploaded image. Unknown or foreign paths are ignored."""
    if not image_path or not image_path.startswith(IMAGE_URL_PREFIX + "/"):
        return False
    name = secure_filename(image_path.rsplit("/", 1)[1])
    target = image_directory() / name
    if not target.exists():
        return False
    os.remove(target)
    logger.info("Deleted item image %s", name)
    return True
