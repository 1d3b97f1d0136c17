"""
media helpers:
- stash_upload(): save an incoming multipart file to the temp upload dir
- CloudinaryMediaStore: push a local file to Cloudinary and return its URL

The local file is always removed after an upload attempt, whether the
upload succeeded or not.
"""
from __future__ import annotations

import logging
import os
import uuid

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    """The media store did not accept the file."""


def stash_upload(file: FileStorage | None, directory: str) -> str | None:
    """Write an uploaded file under ``directory`` and return its path."""
    if file is None or not file.filename:
        return None
    os.makedirs(directory, exist_ok=True)
    name = secure_filename(file.filename) or "upload"
    path = os.path.join(directory, f"{uuid.uuid4().hex}-{name}")
    file.save(path)
    return path


def discard(path: str | None) -> None:
    if path and os.path.exists(path):
        os.remove(path)


class CloudinaryMediaStore:
    def __init__(self, cloud_name: str | None, api_key: str | None, api_secret: str | None):
        self.config = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
        }
        cloudinary.config(secure=True, **{k: v for k, v in self.config.items() if v})

    def upload(self, path: str) -> str:
        if not path:
            raise MediaUploadError("No file to upload")
        try:
            response = cloudinary.uploader.upload(path, resource_type="auto")
        except (CloudinaryError, OSError) as exc:
            logger.exception("Media upload failed for %s", os.path.basename(path))
            raise MediaUploadError(str(exc)) from exc
        finally:
            discard(path)

        url = (response or {}).get("secure_url") or (response or {}).get("url")
        if not url:
            raise MediaUploadError("Media store returned no URL")
        return url
