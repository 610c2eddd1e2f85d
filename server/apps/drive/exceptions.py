"""Exceptions for drive app.

Every error carries a ``kind`` so the HTTP layer can map it to a status
code without inspecting messages.
"""

from typing import ClassVar


class DriveError(Exception):
    """Base class for storage core errors."""

    kind: ClassVar[str] = 'drive_error'


class QuotaExceededError(DriveError):
    """Raised when an operation would exceed user's storage quota."""

    kind = 'quota_exceeded'

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = quota_bytes - used_bytes
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )


class NotFoundError(DriveError):
    """Node or version is missing, or is not owned by the caller."""

    kind = 'not_found'


class AccessDeniedError(DriveError):
    """Node exists but the caller has no permission for it."""

    kind = 'access_denied'


class InvalidStateError(DriveError):
    """Operation is not allowed in the node's current state."""

    kind = 'invalid_state'


class StorageBackendError(DriveError):
    """Content layer (object storage) operation failed."""

    kind = 'storage_backend_failure'
