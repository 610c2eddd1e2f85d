"""Business logic for trash (soft delete) operations."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from server.apps.drive import events
from server.apps.drive.exceptions import NotFoundError, StorageBackendError
from server.apps.drive.infrastructure.storage import get_storage
from server.apps.drive.logic.access import get_owned_node
from server.apps.drive.logic.quota_operations import release
from server.apps.drive.logic.tree_operations import collect_subtree
from server.apps.drive.models import FileNode, FileVersion

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PurgeReport:
    """Outcome of a purge sweep."""

    purged: int = 0
    failed: int = 0


def soft_delete(user: _User, file_id: uuid.UUID) -> FileNode:
    """Move a node to the trash.

    Folders take their live descendants along, stamped with the same
    ``deleted_at`` so that restore can bring them back together.
    Quota is NOT released - trash files count toward quota until purged.

    Args:
        user: Caller (must own the node).
        file_id: Node to trash.

    Returns:
        Updated FileNode.

    Raises:
        NotFoundError: If the node is missing, trashed or foreign.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        deleted_at = timezone.now()

        trashed_ids = [node.id]
        if node.is_folder:
            trashed_ids = [
                descendant.id
                for descendant in collect_subtree(node)
                if not descendant.is_deleted
            ]
        FileNode.all_objects.filter(id__in=trashed_ids).update(
            is_deleted=True,
            deleted_at=deleted_at,
            modified_at=deleted_at,
        )
        node.is_deleted = True
        node.deleted_at = deleted_at

    logger.info(
        'Moved to trash: %s (ID: %s, %d nodes)',
        node.name,
        node.id,
        len(trashed_ids),
    )
    events.emit(events.FILE_DELETED, user.id, node.id, 'trash')
    return node


def restore(user: _User, file_id: uuid.UUID) -> FileNode:
    """Bring a node back from the trash.

    Descendants trashed together with a folder come back with it. If the
    node's parent is gone or still in the trash, the node is restored
    into the root.

    Args:
        user: Caller (must own the node).
        file_id: Node to restore.

    Returns:
        Updated FileNode.

    Raises:
        NotFoundError: If the node is missing, foreign or not in trash.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, include_deleted=True, lock=True)
        if not node.is_deleted:
            raise NotFoundError(f'File not in trash: {file_id}')

        deleted_at = node.deleted_at
        restored_ids = [node.id]
        if node.is_folder:
            restored_ids = [
                descendant.id
                for descendant in collect_subtree(node)
                if descendant.is_deleted and descendant.deleted_at == deleted_at
            ]

        update_fields = ['is_deleted', 'deleted_at', 'modified_at']
        if node.parent_id is not None:
            parent = FileNode.all_objects.filter(id=node.parent_id).first()
            if parent is None or parent.is_deleted:
                logger.info(
                    'Parent of %s is unavailable, restoring to root',
                    node.id,
                )
                node.parent = None
                update_fields.append('parent')

        now = timezone.now()
        FileNode.all_objects.filter(id__in=restored_ids).exclude(
            id=node.id,
        ).update(is_deleted=False, deleted_at=None, modified_at=now)

        node.is_deleted = False
        node.deleted_at = None
        node.save(update_fields=update_fields)

    logger.info('Restored from trash: %s (ID: %s)', node.name, node.id)
    events.emit(events.FILE_UPDATED, user.id, node.id, 'restore')
    return node


def _content_paths(nodes: list[FileNode]) -> set[str]:
    """Storage keys of the nodes' current objects and all their versions."""
    node_ids = [node.id for node in nodes]
    paths = {node.storage_path for node in nodes if node.storage_path}
    paths.update(
        FileVersion.objects.filter(file_id__in=node_ids).values_list(
            'storage_path',
            flat=True,
        ),
    )
    return paths


def _delete_content(paths: set[str]) -> None:
    """Delete stored objects once no record references them.

    Raises:
        StorageBackendError: If storage refuses the delete.
    """
    if paths:
        get_storage().delete_many(paths)


def _destroy_records(nodes: list[FileNode]) -> int:
    """Delete version rows and nodes, releasing quota per owner.

    Children go before parents, so the tree never points at a missing
    node. Returns the number of bytes released.
    """
    released = 0
    for node in reversed(nodes):
        FileVersion.objects.filter(file_id=node.id).delete()
        FileNode.all_objects.filter(id=node.id).delete()
        if not node.is_folder and node.size_bytes:
            release(node.owner, node.size_bytes)
            released += node.size_bytes
    return released


def permanent_delete(user: _User, file_id: uuid.UUID) -> FileNode:
    """Permanently delete a node, its versions and its content.

    Works on live and trashed nodes. Folders are deleted with their whole
    subtree. Records are removed first and content last, inside one
    transaction: a storage failure rolls the records back, and a database
    failure leaves every object in place. Quota is released by the size
    of every deleted file.

    Args:
        user: Caller (must own the node).
        file_id: Node to delete.

    Returns:
        The deleted FileNode (no longer in the database).

    Raises:
        NotFoundError: If the node is missing or foreign.
        StorageBackendError: If the content cannot be deleted.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, include_deleted=True, lock=True)
        nodes = collect_subtree(node)
        paths = _content_paths(nodes)
        released = _destroy_records(nodes)
        _delete_content(paths)

    logger.info(
        'Permanently deleted: %s (ID: %s, %d nodes, %d bytes)',
        node.name,
        file_id,
        len(nodes),
        released,
    )
    events.emit(events.FILE_DELETED, user.id, node.id, 'delete')
    return node


def _purge_node(file_id: uuid.UUID) -> bool:
    """Purge one trashed node and its subtree.

    Records go first. Storage failures are then logged and skipped, so
    the records stay removed and only unreferenced objects can be left
    behind. Returns False if the node was already gone.
    """
    with transaction.atomic():
        node = (
            FileNode.all_objects.select_for_update()
            .select_related('owner')
            .filter(id=file_id, is_deleted=True)
            .first()
        )
        if node is None:
            return False

        nodes = collect_subtree(node)
        paths = _content_paths(nodes)
        _destroy_records(nodes)
        try:
            _delete_content(paths)
        except StorageBackendError:
            logger.exception(
                'Failed to delete content of %s, orphaned objects: %s',
                file_id,
                sorted(paths),
            )

    events.emit(events.FILE_DELETED, node.owner_id, node.id, 'purge')
    return True


def expired_trash(
    cutoff: datetime,
    batch_size: int | None = None,
) -> QuerySet[FileNode]:
    """Trashed nodes of every owner deleted strictly before the cutoff.

    Oldest first; at the same deletion time files come before folders.
    """
    candidates = FileNode.all_objects.filter(
        is_deleted=True,
        deleted_at__lt=cutoff,
    ).select_related('owner').order_by('deleted_at', 'is_folder')
    if batch_size is not None:
        candidates = candidates[:batch_size]
    return candidates


def purge_older_than(
    cutoff: datetime,
    batch_size: int | None = None,
) -> PurgeReport:
    """Permanently delete trashed nodes deleted before the cutoff.

    Covers every owner. The sweep is idempotent: nodes that disappear
    while it runs are skipped. Storage errors for one node never stop
    the sweep.

    Args:
        cutoff: Nodes with ``deleted_at`` strictly before this are purged.
        batch_size: Maximum number of nodes to process, oldest first.

    Returns:
        PurgeReport with purged and failed counts.
    """
    candidate_ids = list(
        expired_trash(cutoff, batch_size).values_list('id', flat=True),
    )

    report = PurgeReport()
    for file_id in candidate_ids:
        try:
            purged = _purge_node(file_id)
        except Exception:
            logger.exception('Failed to purge node from trash: %s', file_id)
            report.failed += 1
            continue
        if purged:
            report.purged += 1
            logger.info('Purged node from trash: %s', file_id)

    logger.info(
        'Trash purge before %s: %d purged, %d failed',
        cutoff,
        report.purged,
        report.failed,
    )
    return report


def purge_expired_trash() -> PurgeReport:
    """Purge everything trashed longer than the retention period.

    Returns:
        PurgeReport of the sweep.
    """
    retention = timedelta(days=settings.DRIVE_TRASH_RETENTION_DAYS)
    return purge_older_than(timezone.now() - retention)


def list_trash(user: _User) -> list[FileNode]:
    """List the top-level items of a user's trash, newest first.

    Nodes whose parent was trashed at the same moment are listed through
    that parent only.

    Args:
        user: User whose trash to list.

    Returns:
        Trashed nodes.
    """
    trashed = list(
        FileNode.all_objects.filter(
            owner=user,
            is_deleted=True,
        ).select_related('parent').order_by('-deleted_at'),
    )
    return [
        node for node in trashed
        if node.parent is None
        or not node.parent.is_deleted
        or node.parent.deleted_at != node.deleted_at
    ]


def empty_trash(user: _User) -> int:
    """Permanently delete all items in user's trash.

    Args:
        user: User whose trash to empty.

    Returns:
        Number of top-level items deleted.
    """
    count = 0
    for node in list_trash(user):
        # Already removed with a folder deleted earlier in this loop
        if not FileNode.all_objects.filter(id=node.id).exists():
            continue
        permanent_delete(user, node.id)
        count += 1

    logger.info(
        'Trash emptied for user %s: %d items deleted',
        user.username,
        count,
    )
    return count
