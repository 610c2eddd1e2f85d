"""Business logic for file version history.

History is append-only: uploads and restores add a version numbered one
above the current maximum, and no version is ever rewritten or removed
while its file exists.
"""

import logging
import uuid
from typing import Any, BinaryIO

from django.conf import settings
from django.core.files.base import File as DjangoFile
from django.db import transaction
from django.db.models import Max

from server.apps.drive import events
from server.apps.drive.exceptions import InvalidStateError, NotFoundError
from server.apps.drive.infrastructure.metadata import (
    build_version_path,
    calculate_checksum,
    get_file_size,
    validate_node_name,
)
from server.apps.drive.infrastructure.storage import get_storage
from server.apps.drive.logic.access import get_owned_node, get_readable_node
from server.apps.drive.logic.quota_operations import reserve
from server.apps.drive.models import FileNode, FileVersion

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


def latest_version_number(file_node: FileNode) -> int:
    """Highest version number of a file, 0 if it has none."""
    latest = file_node.versions.aggregate(latest=Max('version_number'))
    return latest['latest'] or 0


def append_version(  # noqa: WPS211
    file_node: FileNode,
    storage_path: str,
    size_bytes: int,
    uploaded_by: _User,
    comment: str = '',
    checksum_sha256: str = '',
) -> FileVersion:
    """Record a version pointing at content that is already stored.

    Args:
        file_node: File the version belongs to.
        storage_path: Storage key of the content.
        size_bytes: Content size.
        uploaded_by: Author of the version.
        comment: Free-form note.
        checksum_sha256: SHA256 of the content.

    Returns:
        Created FileVersion.
    """
    version_number = latest_version_number(file_node) + 1
    version = FileVersion.objects.create(
        file=file_node,
        version_number=version_number,
        storage_path=storage_path,
        size_bytes=size_bytes,
        checksum_sha256=checksum_sha256,
        uploaded_by=uploaded_by,
        comment=comment,
    )
    logger.info(
        'Version %d recorded for file %s: %s',
        version_number,
        file_node.id,
        storage_path,
    )
    return version


def create_version(
    file_node: FileNode,
    file_obj: BinaryIO | DjangoFile,
    uploaded_by: _User,
    comment: str = '',
) -> FileVersion:
    """Store new content and record it as the next version.

    The file's current pointer is left alone; callers decide whether the
    new version becomes current. If the record cannot be written, the
    stored object is removed again.

    Args:
        file_node: File the version belongs to.
        file_obj: Content to store.
        uploaded_by: Author of the version.
        comment: Free-form note.

    Returns:
        Created FileVersion.

    Raises:
        StorageBackendError: If the content cannot be stored.
    """
    version_number = latest_version_number(file_node) + 1
    storage = get_storage()
    storage_path = build_version_path(
        file_node.owner_id,
        file_node.id,
        version_number,
    )
    size_bytes = get_file_size(file_obj)
    checksum = calculate_checksum(file_obj)
    saved_name = storage.save(storage_path, file_obj)

    try:
        return append_version(
            file_node,
            saved_name,
            size_bytes,
            uploaded_by,
            comment,
            checksum_sha256=checksum,
        )
    except Exception:
        logger.exception(
            'Version record failed, rolling back storage upload: %s',
            saved_name,
        )
        storage.rollback_upload(saved_name)
        raise


def upload_new_version(
    user: _User,
    file_id: uuid.UUID,
    file_obj: BinaryIO | DjangoFile,
    comment: str = '',
) -> FileVersion:
    """Upload new content for a file and make it current.

    The size difference is reserved against the owner's quota before any
    content is stored. If storing the content or persisting the records
    fails, the reservation is rolled back with the transaction and the
    stored object is deleted.

    Args:
        user: Caller (must own the file).
        file_id: File to update.
        file_obj: New content.
        comment: Version note, defaults to 'Version N'.

    Returns:
        Created FileVersion (its file is the updated node).

    Raises:
        NotFoundError: If the file is missing or not owned by the caller.
        InvalidStateError: If the node is a folder.
        QuotaExceededError: If the owner lacks space for the growth.
        StorageBackendError: If the content cannot be stored.
    """
    new_size = get_file_size(file_obj)
    checksum = calculate_checksum(file_obj)
    version = None

    try:
        with transaction.atomic():
            file_node = get_owned_node(user, file_id, lock=True)
            if file_node.is_folder:
                raise InvalidStateError('Folders have no versions')

            reserve(user, new_size - file_node.size_bytes)

            next_number = latest_version_number(file_node) + 1
            version = create_version(
                file_node,
                file_obj,
                uploaded_by=user,
                comment=comment or f'Version {next_number}',
            )

            file_node.storage_path = version.storage_path
            file_node.size_bytes = new_size
            file_node.checksum_sha256 = checksum
            file_node.last_modified_by = user
            file_node.save(update_fields=[
                'storage_path',
                'size_bytes',
                'checksum_sha256',
                'last_modified_by',
                'modified_at',
            ])
    except Exception:
        if version is not None:
            get_storage().rollback_upload(version.storage_path)
        raise

    logger.info(
        'New version %d uploaded for file %s (%d bytes)',
        version.version_number,
        file_node.id,
        new_size,
    )
    events.emit(
        events.FILE_UPDATED,
        user.id,
        file_node.id,
        'upload_version',
        version_number=version.version_number,
    )
    return version


def restore_version(
    user: _User,
    file_id: uuid.UUID,
    version_number: int,
    new_name: str | None = None,
) -> FileNode:
    """Make an old version current again by appending a new version.

    The new version references the target's content; no content is
    copied and no existing version is touched. Quota follows the size
    difference between the target and the current content.

    Args:
        user: Caller (must own the file).
        file_id: File to restore.
        version_number: Version to bring back.
        new_name: Optional new name for the file.

    Returns:
        Updated FileNode.

    Raises:
        NotFoundError: If the file or the version does not exist.
        InvalidStateError: If the node is a folder.
        QuotaExceededError: If the owner lacks space for the growth.
    """
    name = validate_node_name(new_name) if new_name else None

    with transaction.atomic():
        file_node = get_owned_node(user, file_id, lock=True)
        if file_node.is_folder:
            raise InvalidStateError('Folders have no versions')

        try:
            target = file_node.versions.get(version_number=version_number)
        except FileVersion.DoesNotExist:
            raise NotFoundError(
                f'Version {version_number} not found for file {file_id}',
            ) from None

        reserve(user, target.size_bytes - file_node.size_bytes)

        version = append_version(
            file_node,
            target.storage_path,
            target.size_bytes,
            uploaded_by=user,
            comment=f'Restored to v{version_number}',
            checksum_sha256=target.checksum_sha256,
        )

        file_node.storage_path = target.storage_path
        file_node.size_bytes = target.size_bytes
        file_node.checksum_sha256 = target.checksum_sha256
        file_node.last_modified_by = user
        if name:
            file_node.name = name
        file_node.save(update_fields=[
            'name',
            'storage_path',
            'size_bytes',
            'checksum_sha256',
            'last_modified_by',
            'modified_at',
        ])

    logger.info(
        'File %s restored to v%d as v%d',
        file_node.id,
        version_number,
        version.version_number,
    )
    events.emit(
        events.FILE_UPDATED,
        user.id,
        file_node.id,
        'restore_version',
        from_version=version_number,
        new_version=version.version_number,
        renamed_to=name,
    )
    return file_node


def list_versions(user: _User, file_id: uuid.UUID) -> list[FileVersion]:
    """List a file's versions, newest first.

    Args:
        user: Caller (owner or shared).
        file_id: File to inspect.

    Returns:
        Versions ordered by descending version number.
    """
    file_node = get_readable_node(user, file_id)
    return list(
        file_node.versions.select_related('uploaded_by').order_by(
            '-version_number',
        ),
    )


def version_download_url(
    user: _User,
    file_id: uuid.UUID,
    version_number: int,
    ttl: int | None = None,
    force_download: bool = False,
) -> str:
    """Sign a download URL for one version's content.

    Args:
        user: Caller (owner or shared).
        file_id: File to inspect.
        version_number: Version to download.
        ttl: URL lifetime in seconds, defaults to ``DRIVE_SIGNED_URL_TTL``.
        force_download: Ask clients to save instead of display.

    Returns:
        Signed URL.

    Raises:
        NotFoundError: If the file or the version does not exist.
    """
    file_node = get_readable_node(user, file_id)
    try:
        version = file_node.versions.get(version_number=version_number)
    except FileVersion.DoesNotExist:
        raise NotFoundError(
            f'Version {version_number} not found for file {file_id}',
        ) from None

    return get_storage().signed_url(
        version.storage_path,
        ttl or settings.DRIVE_SIGNED_URL_TTL,
        force_download=force_download,
    )
