"""Database models for drive app."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Final, final, override

from django.conf import settings
from django.db import models

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_STORAGE_PATH_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_CHECKSUM_MAX_LENGTH: Final = 64  # SHA256 hex length
_STATUS_MAX_LENGTH: Final = 16
_COMMENT_MAX_LENGTH: Final = 500


def default_quota_bytes() -> int:
    """Default quota for newly created ledgers (``DRIVE_DEFAULT_QUOTA_BYTES``)."""
    return settings.DRIVE_DEFAULT_QUOTA_BYTES


class SyncStatus(models.TextChoices):
    """Per-file sync indicator."""

    SYNCED = 'synced', 'Synced'
    SYNCING = 'syncing', 'Syncing'
    ERROR = 'error', 'Error'


class ConflictStatus(models.TextChoices):
    """State of a detected divergence."""

    DETECTED = 'detected', 'Detected'
    RESOLVED = 'resolved', 'Resolved'


class ResolutionStrategy(models.TextChoices):
    """How a detected conflict is settled."""

    KEEP_LOCAL = 'keep_local', 'Keep local'
    KEEP_REMOTE = 'keep_remote', 'Keep remote'
    KEEP_BOTH = 'keep_both', 'Keep both'


@dataclass(frozen=True, slots=True)
class ConflictInfo:
    """Conflict marker attached to a file."""

    status: str
    at: datetime
    strategy: str | None = None


class LiveNodeManager(models.Manager['FileNode']):
    """Default manager: hides nodes that are in the trash."""

    @override
    def get_queryset(self) -> models.QuerySet['FileNode']:
        return super().get_queryset().filter(is_deleted=False)


@final
class FileNode(models.Model):
    """File or folder owned by a user.

    Nodes form a tree through ``parent``; a null parent means the node
    sits in the owner's root. Folders carry no content and have size 0.
    ``storage_path`` points at the content of the current version.

    ``objects`` only returns live nodes, ``all_objects`` includes trash.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='drive_nodes',
        db_index=True,
    )

    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        related_name='children',
        null=True,
        blank=True,
    )

    is_folder = models.BooleanField(default=False)

    size_bytes = models.BigIntegerField(
        default=0,
        help_text='Size of the current version in bytes (0 for folders)',
    )

    storage_path = models.CharField(
        max_length=_STORAGE_PATH_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Storage key of the current content',
    )

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        blank=True,
        default='',
    )

    checksum_sha256 = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
    )

    sync_status = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=SyncStatus.choices,
        default=SyncStatus.SYNCED,
        db_index=True,
    )

    # Conflict marker, empty status means no conflict was ever recorded
    conflict_status = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=ConflictStatus.choices,
        blank=True,
        default='',
    )
    conflict_strategy = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=ResolutionStrategy.choices,
        blank=True,
        default='',
    )
    conflict_at = models.DateTimeField(null=True, blank=True)

    offline_available = models.BooleanField(default=False)

    # Trash
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    last_modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    objects = LiveNodeManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File node'  # type: ignore[mutable-override]
        verbose_name_plural = 'File nodes'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-is_folder', 'name']
        base_manager_name = 'all_objects'

        indexes: ClassVar[list[models.Index]] = [
            # Directory listing
            models.Index(
                fields=['owner', 'parent'],
                name='drive_owner_parent_idx',
            ),
            # Recent files for sync and offline manifests
            models.Index(
                fields=['owner', '-modified_at'],
                name='drive_owner_recent_idx',
            ),
            # Trash sweep
            models.Index(
                fields=['is_deleted', 'deleted_at'],
                name='drive_trash_sweep_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(size_bytes__gte=0),
                name='drive_node_size_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        kind = 'folder' if self.is_folder else 'file'
        return f'{self.owner_id}:{self.name} ({kind})'

    @property
    def conflict(self) -> ConflictInfo | None:
        """Conflict marker, or None if the file never conflicted."""
        if not self.conflict_status or self.conflict_at is None:
            return None
        return ConflictInfo(
            status=self.conflict_status,
            at=self.conflict_at,
            strategy=self.conflict_strategy or None,
        )


@final
class FileVersion(models.Model):
    """Immutable content snapshot of a file.

    Version numbers start at 1 and grow by one per upload or restore.
    Rows are never updated; they go away only with their file.
    """

    file = models.ForeignKey(
        FileNode,
        on_delete=models.CASCADE,
        related_name='versions',
    )

    version_number = models.PositiveIntegerField()

    storage_path = models.CharField(max_length=_STORAGE_PATH_MAX_LENGTH)

    size_bytes = models.BigIntegerField()

    checksum_sha256 = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
    )

    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='+',
        null=True,
        blank=True,
    )

    comment = models.CharField(
        max_length=_COMMENT_MAX_LENGTH,
        blank=True,
        default='',
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'File version'  # type: ignore[mutable-override]
        verbose_name_plural = 'File versions'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-version_number']

        constraints: ClassVar[list[models.BaseConstraint]] = [
            # Version numbers are never reused within a file
            models.UniqueConstraint(
                fields=['file', 'version_number'],
                name='drive_version_number_unique',
            ),
            models.CheckConstraint(
                condition=models.Q(version_number__gte=1),
                name='drive_version_number_positive',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.file_id} v{self.version_number}'


@final
class UserQuota(models.Model):
    """Storage quota for a user.

    Tracks user's storage limit and current usage. Usage includes all files
    including soft-deleted files (trash) until they are purged.

    When over quota, users can still read and delete files, but uploads
    are blocked until usage falls below the limit.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='quota',
        primary_key=True,
    )

    quota_bytes = models.BigIntegerField(
        default=default_quota_bytes,
        help_text='Storage quota limit in bytes',
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'User Quota'  # type: ignore[mutable-override]
        verbose_name_plural = 'User Quotas'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(quota_bytes__gte=0),
                name='quota_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.used_bytes}/{self.quota_bytes}'

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.used_bytes + size_bytes <= self.quota_bytes

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        available = self.quota_bytes - self.used_bytes
        return max(0, available)
