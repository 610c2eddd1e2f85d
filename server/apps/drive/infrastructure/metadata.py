"""Metadata extraction utilities for stored content."""

import hashlib
import mimetypes
import uuid
from typing import BinaryIO, Final

from django.core.exceptions import ValidationError
from django.core.files.base import File as DjangoFile

_CHUNK_SIZE: Final = 8192  # 8KB chunks for checksum calculation
_NAME_MAX_LENGTH: Final = 255
_FORBIDDEN_NAME_CHARACTERS: Final = frozenset('/\\\x00')


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type


def calculate_checksum(file_obj: BinaryIO | DjangoFile) -> str:
    """Calculate SHA256 checksum of file.

    Reads file in chunks to handle large files efficiently.
    Resets file pointer to beginning after calculation.

    Args:
        file_obj: File-like object to checksum.

    Returns:
        Hex-encoded SHA256 hash string.
    """
    sha256_hash = hashlib.sha256()

    file_obj.seek(0)
    for chunk in iter(lambda: file_obj.read(_CHUNK_SIZE), b''):
        sha256_hash.update(chunk)
    file_obj.seek(0)

    return sha256_hash.hexdigest()


def get_file_size(file_obj: BinaryIO | DjangoFile) -> int:
    """Get file size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        File size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size


def validate_node_name(name: str) -> str:
    """Validate a file or folder name.

    Args:
        name: Proposed name.

    Returns:
        Name with surrounding whitespace removed.

    Raises:
        ValidationError: If the name is empty, too long or has a separator.
    """
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError('Name cannot be empty')
    if len(cleaned) > _NAME_MAX_LENGTH:
        raise ValidationError(
            f'Name cannot be longer than {_NAME_MAX_LENGTH} characters',
        )
    if _FORBIDDEN_NAME_CHARACTERS.intersection(cleaned):
        raise ValidationError('Name cannot contain path separators')
    return cleaned


def prefixed_node_name(prefix: str, name: str) -> str:
    """Prepend a prefix to a valid name, cutting it to the maximum length."""
    return f'{prefix}{name}'[:_NAME_MAX_LENGTH].rstrip()


def build_version_path(
    owner_id: int,
    file_id: uuid.UUID,
    version_number: int,
) -> str:
    """Build the storage key of one file version.

    Every version gets its own key, so stored objects are never
    overwritten.

    Args:
        owner_id: Owner's user ID.
        file_id: File node ID.
        version_number: Version number (1-based).

    Returns:
        Storage path (e.g., '7/6f1c.../v3').
    """
    return f'{owner_id}/{file_id}/v{version_number}'
