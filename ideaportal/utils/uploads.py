import logging
import mimetypes
import re
import secrets
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

from starlette.datastructures import UploadFile

from ideaportal.config.loader import get_upload_settings

logger = logging.getLogger("ideaportal.uploads")

UPLOAD_URL_PREFIX = "/uploads"
_CHUNK_SIZE = 1024 * 1024
_SAFE_FIELD = re.compile(r"[^A-Za-z0-9_-]+")


class UploadTooLargeError(ValueError):
    pass


def media_type_for(content_type: Optional[str]) -> str:
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("audio/"):
        return "audio"
    return "file"


def _extension_for(upload: UploadFile) -> str:
    suffix = Path(upload.filename or "").suffix.lower()
    if suffix and len(suffix) <= 10:
        return suffix
    guessed = mimetypes.guess_extension(upload.content_type or "")
    return guessed or ""


def build_stored_name(field_name: str, upload: UploadFile) -> str:
    field = _SAFE_FIELD.sub("", field_name or "") or "file"
    stamp = int(time.time() * 1000)
    return f"{field}-{stamp}-{secrets.randbelow(10**9)}{_extension_for(upload)}"


def upload_directory() -> Path:
    directory = get_upload_settings()["directory"]
    directory.mkdir(parents=True, exist_ok=True)
    return directory


async def save_upload(field_name: str, upload: UploadFile) -> Dict[str, str]:
    """
    Stream an uploaded file into the upload directory.

    Returns the media record stored on the idea ({"type", "url"}); raises
    UploadTooLargeError (and removes the partial file) past the size limit.
    """
    settings = get_upload_settings()
    limit = settings["max_file_size_bytes"]
    directory = upload_directory()
    stored_name = build_stored_name(field_name, upload)
    destination = directory / stored_name

    written = 0
    with destination.open("wb") as handle:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                break
            handle.write(chunk)
    if written > limit:
        destination.unlink(missing_ok=True)
        raise UploadTooLargeError(
            f"File '{upload.filename}' exceeds the {settings['max_file_size_mb']} MB limit."
        )

    logger.info(f"Stored upload {upload.filename!r} as {stored_name} ({written} bytes)")
    return {
        "type": media_type_for(upload.content_type),
        "url": f"{UPLOAD_URL_PREFIX}/{stored_name}",
    }


def discard_uploads(media: Iterable[Dict[str, str]]) -> None:
    """Remove files stored by save_upload for a submission that did not go through."""
    directory = upload_directory()
    for record in media:
        stored_name = record["url"].rsplit("/", 1)[-1]
        (directory / stored_name).unlink(missing_ok=True)
        logger.info(f"Discarded upload {stored_name}")
