"""Business logic for the file/folder tree."""

import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, BinaryIO, Final

from django.conf import settings
from django.core.files.base import File as DjangoFile
from django.db import transaction

from server.apps.drive import events
from server.apps.drive.exceptions import InvalidStateError, NotFoundError
from server.apps.drive.infrastructure.metadata import (
    build_version_path,
    calculate_checksum,
    detect_mime_type,
    get_file_size,
    validate_node_name,
)
from server.apps.drive.infrastructure.storage import get_storage
from server.apps.drive.logic.access import (
    authorize,
    get_owned_node,
    get_readable_node,
)
from server.apps.drive.logic.quota_operations import reserve
from server.apps.drive.logic.version_operations import (
    append_version,
    create_version,
)
from server.apps.drive.models import FileNode, SyncStatus

# User type for Django's dynamic user model
_User = Any

ROOT_NAME: Final = 'My Files'

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PathItem:
    """One breadcrumb of a node's path; the root has no id."""

    id: uuid.UUID | None
    name: str
    is_root: bool = False


def _resolve_parent(user: _User, parent_id: uuid.UUID | None) -> FileNode | None:
    """Validate a destination folder.

    Args:
        user: Caller (must own the folder).
        parent_id: Folder ID, or None for the root.

    Returns:
        Folder node, or None for the root.

    Raises:
        NotFoundError: If the folder is missing, trashed or foreign.
        InvalidStateError: If the destination is not a folder.
    """
    if parent_id is None:
        return None
    parent = get_owned_node(user, parent_id)
    if not parent.is_folder:
        raise InvalidStateError(f'Destination is not a folder: {parent_id}')
    return parent


def create_folder(
    user: _User,
    name: str,
    parent_id: uuid.UUID | None = None,
) -> FileNode:
    """Create a folder.

    Args:
        user: Owner of the folder.
        name: Folder name.
        parent_id: Containing folder, None for the root.

    Returns:
        Created folder node.
    """
    cleaned_name = validate_node_name(name)

    with transaction.atomic():
        parent = _resolve_parent(user, parent_id)
        folder = FileNode.objects.create(
            name=cleaned_name,
            owner=user,
            parent=parent,
            is_folder=True,
            sync_status=SyncStatus.SYNCED,
            last_modified_by=user,
        )

    logger.info('Folder created: %s (ID: %s)', cleaned_name, folder.id)
    events.emit(events.FOLDER_CREATED, user.id, folder.id, 'create')
    return folder


def create_file(
    user: _User,
    name: str,
    file_obj: BinaryIO | DjangoFile,
    parent_id: uuid.UUID | None = None,
    comment: str = '',
) -> FileNode:
    """Upload a new file with its first version.

    Transaction safety: the quota reservation, the node and its version
    record are written in one transaction. The reservation happens
    first; if storing the content or writing the records fails, the
    transaction rolls the reservation back and any stored object is
    deleted.

    Args:
        user: Owner of the file.
        name: File name.
        file_obj: Content to upload.
        parent_id: Containing folder, None for the root.
        comment: Note for version 1, defaults to 'Initial version'.

    Returns:
        Created FileNode.

    Raises:
        ValidationError: If the name is invalid.
        NotFoundError: If the parent folder does not exist.
        QuotaExceededError: If the owner lacks space.
        StorageBackendError: If the content cannot be stored.
    """
    cleaned_name = validate_node_name(name)
    file_size = get_file_size(file_obj)
    checksum = calculate_checksum(file_obj)
    mime_type = detect_mime_type(cleaned_name)
    version = None

    logger.info('Creating file %s (%d bytes)', cleaned_name, file_size)

    try:
        with transaction.atomic():
            parent = _resolve_parent(user, parent_id)
            reserve(user, file_size)

            file_node = FileNode.objects.create(
                name=cleaned_name,
                owner=user,
                parent=parent,
                size_bytes=file_size,
                mime_type=mime_type,
                checksum_sha256=checksum,
                sync_status=SyncStatus.SYNCED,
                last_modified_by=user,
            )
            version = create_version(
                file_node,
                file_obj,
                uploaded_by=user,
                comment=comment or 'Initial version',
            )
            file_node.storage_path = version.storage_path
            file_node.save(update_fields=['storage_path', 'modified_at'])
    except Exception:
        if version is not None:
            get_storage().rollback_upload(version.storage_path)
        raise

    logger.info(
        'File record created: %s (ID: %s)',
        file_node.storage_path,
        file_node.id,
    )
    events.emit(events.FILE_CREATED, user.id, file_node.id, 'upload')
    return file_node


def rename_node(user: _User, file_id: uuid.UUID, name: str) -> FileNode:
    """Rename a file or folder.

    Args:
        user: Caller (must own the node).
        file_id: Node to rename.
        name: New name.

    Returns:
        Updated FileNode.
    """
    cleaned_name = validate_node_name(name)

    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        old_name = node.name
        node.name = cleaned_name
        node.last_modified_by = user
        node.save(update_fields=['name', 'last_modified_by', 'modified_at'])

    logger.info('Renamed %s: %s -> %s', node.id, old_name, cleaned_name)
    events.emit(
        events.FILE_UPDATED,
        user.id,
        node.id,
        'rename',
        old_name=old_name,
    )
    return node


def _is_descendant_or_self(
    node: FileNode,
    candidate_id: uuid.UUID | None,
) -> bool:
    """Check whether ``candidate_id`` lies in the subtree rooted at node.

    Walks up from the candidate to the root with a visited set, so a
    corrupted tree cannot loop forever.
    """
    visited: set[uuid.UUID] = set()
    current_id = candidate_id
    while current_id is not None and current_id not in visited:
        if current_id == node.id:
            return True
        visited.add(current_id)
        current_id = (
            FileNode.all_objects.filter(id=current_id)
            .values_list('parent_id', flat=True)
            .first()
        )
    return False


def move_node(
    user: _User,
    file_id: uuid.UUID,
    new_parent_id: uuid.UUID | None,
) -> FileNode:
    """Move a file or folder under another folder (or the root).

    Args:
        user: Caller (must own both the node and the destination).
        file_id: Node to move.
        new_parent_id: Destination folder, None for the root.

    Returns:
        Updated FileNode.

    Raises:
        NotFoundError: If the node or the destination does not exist.
        InvalidStateError: If the destination is not a folder or lies
            inside the moved node.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        parent = _resolve_parent(user, new_parent_id)

        if parent is not None and _is_descendant_or_self(node, parent.id):
            raise InvalidStateError(
                f'Cannot move {file_id} into itself or its descendants',
            )

        old_parent_id = node.parent_id
        node.parent = parent
        node.last_modified_by = user
        node.save(update_fields=['parent', 'last_modified_by', 'modified_at'])

    logger.info(
        'Moved %s: %s -> %s',
        node.id,
        old_parent_id,
        new_parent_id,
    )
    events.emit(
        events.FILE_UPDATED,
        user.id,
        node.id,
        'move',
        from_parent=old_parent_id,
        to_parent=new_parent_id,
    )
    return node


def duplicate_file(  # noqa: WPS211
    user: _User,
    source: FileNode,
    name: str,
    parent: FileNode | None,
    comment: str,
) -> FileNode:
    """Create an independent copy of a file with a fresh history.

    Content is copied in storage, so the copy never shares an object
    with its source. The copy's size is reserved against the caller.

    Args:
        user: Owner of the copy.
        source: File to copy.
        name: Name of the copy.
        parent: Folder of the copy, None for the root.
        comment: Note for the copy's version 1.

    Returns:
        Created FileNode.

    Raises:
        InvalidStateError: If the source has no stored content.
        QuotaExceededError: If the caller lacks space.
        StorageBackendError: If the content cannot be copied.
    """
    if source.is_folder or not source.storage_path:
        raise InvalidStateError(f'Source has no content: {source.id}')

    storage = get_storage()
    copy_id = uuid.uuid4()
    copied_path = None

    try:
        with transaction.atomic():
            reserve(user, source.size_bytes)
            copied_path = storage.copy_object(
                source.storage_path,
                build_version_path(user.id, copy_id, 1),
            )
            copy = FileNode.objects.create(
                id=copy_id,
                name=name,
                owner=user,
                parent=parent,
                size_bytes=source.size_bytes,
                storage_path=copied_path,
                mime_type=source.mime_type,
                checksum_sha256=source.checksum_sha256,
                sync_status=SyncStatus.SYNCED,
                last_modified_by=user,
            )
            append_version(
                copy,
                copied_path,
                source.size_bytes,
                uploaded_by=user,
                comment=comment,
                checksum_sha256=source.checksum_sha256,
            )
    except Exception:
        if copied_path is not None:
            storage.rollback_upload(copied_path)
        raise

    logger.info('File %s copied to %s (ID: %s)', source.id, name, copy.id)
    events.emit(
        events.FILE_CREATED,
        user.id,
        copy.id,
        'copy',
        source_id=source.id,
    )
    return copy


def copy_file(
    user: _User,
    file_id: uuid.UUID,
    parent_id: uuid.UUID | None = None,
    name: str | None = None,
) -> FileNode:
    """Copy a file, by default next to the original and with its name.

    Args:
        user: Caller (must own the file).
        file_id: File to copy.
        parent_id: Destination folder, defaults to the source's folder.
        name: Name of the copy, defaults to the source's name.

    Returns:
        Created FileNode.

    Raises:
        InvalidStateError: If the source is a folder.
    """
    source = get_owned_node(user, file_id)
    if source.is_folder:
        raise InvalidStateError('Folder copy is not supported')

    if parent_id is None:
        parent = source.parent
    else:
        parent = _resolve_parent(user, parent_id)
    copy_name = validate_node_name(name) if name else source.name

    return duplicate_file(
        user,
        source,
        copy_name,
        parent,
        comment='Copied from existing file',
    )


def get_node(user: _User, file_id: uuid.UUID) -> FileNode:
    """Get a live node the caller can read."""
    return get_readable_node(user, file_id)


def list_children(
    user: _User,
    parent_id: uuid.UUID | None = None,
) -> list[FileNode]:
    """List the live nodes directly inside a folder.

    Args:
        user: Caller (must own the folder).
        parent_id: Folder to list, None for the root.

    Returns:
        Folders first, then files, each sorted by name.
    """
    parent = _resolve_parent(user, parent_id)
    return list(FileNode.objects.filter(owner=user, parent=parent))


def get_path(user: _User, file_id: uuid.UUID) -> list[PathItem]:
    """Build the breadcrumb path from the root to a node.

    Walks the parent chain with a visited set. The walk stops silently
    at a node the caller does not own, returning the part built so far.

    Args:
        user: Caller.
        file_id: Node to locate.

    Returns:
        Path items, root first.
    """
    items: list[PathItem] = []
    visited: set[uuid.UUID] = set()
    current_id: uuid.UUID | None = file_id

    while current_id is not None and current_id not in visited:
        visited.add(current_id)
        node = FileNode.all_objects.filter(id=current_id).first()
        if node is None or not authorize(user, node).is_owner:
            break
        items.append(PathItem(id=node.id, name=node.name))
        current_id = node.parent_id

    items.append(PathItem(id=None, name=ROOT_NAME, is_root=True))
    items.reverse()
    return items


def collect_subtree(node: FileNode) -> list[FileNode]:
    """Collect a node and all its descendants, trash included.

    Args:
        node: Subtree root.

    Returns:
        Nodes in breadth-first order, the root first.
    """
    nodes = [node]
    visited = {node.id}
    pending = deque([node.id])
    while pending:
        children = FileNode.all_objects.filter(parent_id=pending.popleft())
        for child in children:
            if child.id in visited:
                continue
            visited.add(child.id)
            nodes.append(child)
            pending.append(child.id)
    return nodes


def download_url(
    user: _User,
    file_id: uuid.UUID,
    ttl: int | None = None,
    force_download: bool = False,
) -> str:
    """Sign a download URL for a file's current content.

    Args:
        user: Caller (owner or shared).
        file_id: File to download.
        ttl: URL lifetime in seconds, defaults to ``DRIVE_SIGNED_URL_TTL``.
        force_download: Ask clients to save instead of display.

    Returns:
        Signed URL.

    Raises:
        NotFoundError: If the node has no stored content.
    """
    node = get_readable_node(user, file_id)
    if node.is_folder or not node.storage_path:
        raise NotFoundError(f'No content stored for {file_id}')
    return get_storage().signed_url(
        node.storage_path,
        ttl or settings.DRIVE_SIGNED_URL_TTL,
        force_download=force_download,
    )
