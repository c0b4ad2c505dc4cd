"""Upload boundary: validation and server-side file placement.

Files are written under the configured upload directory with a generated
name; nothing from the client-supplied filename except its display value
ends up in the stored path.
"""

import random
import time
from dataclasses import dataclass
from pathlib import Path

from invoice_chat.errors import UploadValidationError
from invoice_chat.utils.config import StorageConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}


@dataclass
class StoredUpload:
    """An accepted upload, already written to disk."""

    original_name: str
    mime_type: str
    size_bytes: int
    storage_path: str


def normalize_path(path: Path | str) -> str:
    """Return ``path`` with forward slashes regardless of the host OS."""
    return str(path).replace("\\", "/")


def generate_filename(mime_type: str) -> str:
    """Build a collision-resistant file name: ``<epoch-ms>-<9 digits><ext>``."""
    unique = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999):09d}"
    return f"{unique}{_EXTENSIONS[mime_type]}"


def validate_upload(
    config: StorageConfig, content_type: str | None, data: bytes
) -> str:
    """Check MIME type and size of an upload.

    Args:
        config: Storage configuration with limits.
        content_type: MIME type declared by the client.
        data: Raw file content.

    Returns:
        The accepted MIME type.

    Raises:
        UploadValidationError: If the file is missing, too large or of an
            unsupported type.
    """
    mime_type = (content_type or "").lower()
    if mime_type not in config.allowed_mime_types or mime_type not in _EXTENSIONS:
        raise UploadValidationError("Only PNG/JPG images are allowed")
    if not data:
        raise UploadValidationError("File is required")
    if len(data) > config.max_upload_bytes:
        raise UploadValidationError(
            f"File exceeds the {config.max_upload_bytes} byte limit", too_large=True
        )
    return mime_type


def save_upload(
    config: StorageConfig,
    filename: str | None,
    content_type: str | None,
    data: bytes,
) -> StoredUpload:
    """Validate an upload and write it to the upload directory.

    Args:
        config: Storage configuration.
        filename: Client-supplied file name, kept for display only.
        content_type: Client-declared MIME type.
        data: Raw file content.

    Returns:
        Metadata of the stored file.
    """
    mime_type = validate_upload(config, content_type, data)

    upload_dir = Path(config.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / generate_filename(mime_type)
    target.write_bytes(data)

    display_name = Path(normalize_path(filename or "upload")).name or "upload"
    logger.info("Stored upload %s as %s (%d bytes)", display_name, target, len(data))
    return StoredUpload(
        original_name=display_name,
        mime_type=mime_type,
        size_bytes=len(data),
        storage_path=normalize_path(target),
    )


def remove_stored_file(storage_path: str) -> None:
    """Delete a stored upload, ignoring files that are already gone."""
    Path(storage_path).unlink(missing_ok=True)
    logger.debug("Removed stored file %s", storage_path)
