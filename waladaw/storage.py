"""Local file storage for uploaded images.

Files live under ``UPLOAD_DIR/<folder>/`` with a random name and are served
by the app under ``UPLOAD_URL_PREFIX``.
"""
from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from fastapi import UploadFile

from . import config, errors

logger = logging.getLogger(__name__)

PRODUCTS_FOLDER = "products"
AVATARS_FOLDER = "avatars"


def _local_path(url_path: str) -> Optional[str]:
    prefix = config.UPLOAD_URL_PREFIX + "/"
    if not url_path or not url_path.startswith(prefix):
        return None
    relative = url_path[len(prefix):]
    root = os.path.abspath(config.UPLOAD_DIR)
    full = os.path.abspath(os.path.join(root, relative))
    if not full.startswith(root + os.sep):
        return None
    return full


def save(upload: UploadFile, folder: str) -> str:
    """Store an upload and return its public path, e.g. ``/uploads/products/<uuid>.png``."""
    filename = upload.filename or ""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in config.UPLOAD_ALLOWED_EXTENSIONS:
        raise errors.invalid_data(
            f"File type not allowed. Allowed types: {', '.join(config.UPLOAD_ALLOWED_EXTENSIONS)}"
        )

    content = upload.file.read(config.UPLOAD_MAX_BYTES + 1)
    if not content:
        raise errors.invalid_data("The uploaded file is empty")
    if len(content) > config.UPLOAD_MAX_BYTES:
        raise errors.invalid_data(
            f"The file exceeds the maximum size of {config.UPLOAD_MAX_BYTES // (1024 * 1024)} MB"
        )

    directory = os.path.join(config.UPLOAD_DIR, folder)
    os.makedirs(directory, exist_ok=True)
    name = f"{uuid.uuid4().hex}{ext}"
    with open(os.path.join(directory, name), "wb") as fh:
        fh.write(content)

    url_path = f"{config.UPLOAD_URL_PREFIX}/{folder}/{name}"
    logger.info("Stored upload %s (%s bytes)", url_path, len(content))
    return url_path


def exists(url_path: str) -> bool:
    path = _local_path(url_path)
    return path is not None and os.path.isfile(path)


def delete(url_path: Optional[str]) -> bool:
    """Remove a stored file. Paths outside the upload directory and missing files are ignored."""
    path = _local_path(url_path or "")
    if path is None or not os.path.isfile(path):
        return False
    os.remove(path)
    logger.info("Deleted upload %s", url_path)
    return True


def has_upload(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)
