"""Profile photo validation.

The declared MIME type and extension are only hints; the content signature
detected by libmagic must agree with the declared type.
"""

import logging
import re
from pathlib import PurePath

import magic  # pip install python-magic (or python-magic-bin on Windows)

from storefront_auth.core.errors import InvalidUpload

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}

# Older libmagic builds report some types under legacy names
MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
    "image/x-webp": "image/webp",
}

MIN_IMAGE_BYTES = 100
SNIFF_BYTES = 2048

UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    """Drop any directory part and replace unsafe characters."""
    name = PurePath(filename.replace("\\", "/")).name
    return UNSAFE_FILENAME_CHARS.sub("_", name)[:255]


def detect_mime_type(data: bytes) -> str:
    mime_type = magic.from_buffer(data[:SNIFF_BYTES], mime=True)
    return MIME_ALIASES.get(mime_type, mime_type)


def validate_image(filename: str, declared_type: str, data: bytes, max_bytes: int) -> str:
    """Check a profile photo and return its normalized extension.

    Raises:
        InvalidUpload: wrong extension, type, size, or content signature
    """
    extension = PurePath(sanitize_filename(filename or "")).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidUpload("File extension not allowed. Only JPG, JPEG, PNG, WEBP")

    declared_type = MIME_ALIASES.get(declared_type, declared_type)
    if declared_type not in ALLOWED_MIME_TYPES:
        raise InvalidUpload("File type not allowed")

    if len(data) > max_bytes:
        raise InvalidUpload(f"File too large. Maximum size is {max_bytes // (1024 * 1024)} MB")

    if len(data) < MIN_IMAGE_BYTES:
        raise InvalidUpload("File is too small to be a valid image")

    detected = detect_mime_type(data)
    if detected != declared_type:
        logger.warning(f"Upload signature mismatch: declared {declared_type}, detected {detected}")
        raise InvalidUpload("File is not a valid image or does not match its declared type")

    return extension
