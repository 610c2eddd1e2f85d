"""Business logic for the simulated sync pipeline.

Sync status is a three-state machine::

    synced  --simulate_sync-->      syncing
    error   --simulate_sync-->      syncing
    syncing --deferred completion--> synced   (only while still syncing)
    synced  --simulate_conflict-->  error
    syncing --simulate_conflict-->  error
    error   --resolve_conflict-->   synced   (conflict_operations only)

The deferred completion is a scheduled job whose conditional update
re-checks the state when it runs, so a file that entered ``error`` in
the meantime is left alone.

Re-syncing a file in ``error`` supersedes its divergence: the conflict
marker moves to ``resolved`` with no strategy. A ``detected`` marker is
thus only ever seen on a file in ``error``.
"""

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from server.apps.drive import events
from server.apps.drive.infrastructure.scheduler import get_scheduler
from server.apps.drive.infrastructure.storage import get_storage
from server.apps.drive.logic.access import get_owned_node
from server.apps.drive.models import ConflictStatus, FileNode, SyncStatus

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OfflineItem:
    """Entry of the offline manifest."""

    id: uuid.UUID
    name: str
    size_bytes: int
    mime_type: str
    preview_url: str | None
    offline: bool


def _recent_files(user: _User, limit: int) -> list[FileNode]:
    return list(
        FileNode.objects.filter(owner=user, is_folder=False).order_by(
            '-modified_at',
        )[:limit],
    )


def complete_sync(user_id: int, file_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    """Finish a simulated sync: flip still-syncing files to synced.

    Runs as a deferred job. The update is conditional on the current
    status, so files that moved to ``error`` (or were synced already)
    are skipped.

    Args:
        user_id: Owner the files belong to.
        file_ids: Files targeted by the sync.

    Returns:
        IDs of the files that were flipped.
    """
    with transaction.atomic():
        flipped = list(
            FileNode.all_objects.select_for_update().filter(
                id__in=file_ids,
                owner_id=user_id,
                sync_status=SyncStatus.SYNCING,
            ).values_list('id', flat=True),
        )
        FileNode.all_objects.filter(id__in=flipped).update(
            sync_status=SyncStatus.SYNCED,
            modified_at=timezone.now(),
        )
        for file_id in flipped:
            events.emit(events.FILE_UPDATED, user_id, file_id, 'synced')

    skipped = len(file_ids) - len(flipped)
    logger.info(
        'Sync completed for user %s: %d synced, %d skipped',
        user_id,
        len(flipped),
        skipped,
    )
    return flipped


def _schedule_completion(user_id: int, file_ids: list[uuid.UUID]) -> None:
    get_scheduler().schedule_once(
        settings.DRIVE_SYNC_DELAY_SECONDS,
        complete_sync,
        user_id,
        file_ids,
    )


def simulate_sync(
    user: _User,
    file_ids: Sequence[uuid.UUID] | None = None,
    recent: int | None = None,
) -> list[FileNode]:
    """Start a simulated sync of some files.

    Targets the given files, or the caller's most recently modified files
    when no ids are given. Targets are marked ``syncing`` right away; a
    job scheduled after commit marks them ``synced`` once the delay
    (``DRIVE_SYNC_DELAY_SECONDS``) has passed.

    Args:
        user: Caller (must own every targeted file).
        file_ids: Files to sync.
        recent: How many recent files to sync when no ids are given,
            defaults to ``DRIVE_RECENT_SYNC_COUNT``.

    Returns:
        Targeted nodes, now ``syncing``.

    Raises:
        NotFoundError: If any requested file is missing or foreign.
    """
    with transaction.atomic():
        if file_ids:
            nodes = [
                get_owned_node(user, file_id, lock=True)
                for file_id in dict.fromkeys(file_ids)
            ]
        else:
            nodes = _recent_files(
                user,
                recent or settings.DRIVE_RECENT_SYNC_COUNT,
            )

        now = timezone.now()
        target_ids = [node.id for node in nodes]
        FileNode.all_objects.filter(id__in=target_ids).update(
            sync_status=SyncStatus.SYNCING,
            modified_at=now,
        )
        FileNode.all_objects.filter(
            id__in=target_ids,
            conflict_status=ConflictStatus.DETECTED,
        ).update(
            conflict_status=ConflictStatus.RESOLVED,
            conflict_strategy='',
            conflict_at=now,
        )
        for node in nodes:
            if node.conflict_status == ConflictStatus.DETECTED:
                node.conflict_status = ConflictStatus.RESOLVED
                node.conflict_strategy = ''
                node.conflict_at = now
            node.sync_status = SyncStatus.SYNCING
            events.emit(events.FILE_UPDATED, user.id, node.id, 'syncing')

        if target_ids:
            transaction.on_commit(
                lambda: _schedule_completion(user.id, target_ids),
            )

    logger.info('Sync started for user %s: %d files', user.id, len(nodes))
    return nodes


def simulate_conflict(user: _User, file_id: uuid.UUID) -> FileNode:
    """Mark a file as conflicted.

    Args:
        user: Caller (must own the file).
        file_id: File that diverged.

    Returns:
        Updated FileNode in ``error`` with a detected conflict.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        node.sync_status = SyncStatus.ERROR
        node.conflict_status = ConflictStatus.DETECTED
        node.conflict_strategy = ''
        node.conflict_at = timezone.now()
        node.save(update_fields=[
            'sync_status',
            'conflict_status',
            'conflict_strategy',
            'conflict_at',
            'modified_at',
        ])

    logger.warning('Conflict detected on file %s', node.id)
    events.emit(events.FILE_UPDATED, user.id, node.id, 'conflict')
    return node


def get_sync_status(user: _User) -> list[FileNode]:
    """List the caller's files that are not synced (syncing or error).

    Args:
        user: Caller.

    Returns:
        Live nodes whose status is not ``synced``.
    """
    return list(
        FileNode.objects.filter(owner=user).exclude(
            sync_status=SyncStatus.SYNCED,
        ).order_by('-modified_at'),
    )


def report_changes(
    user: _User,
    file_ids: Sequence[uuid.UUID],
) -> list[FileNode]:
    """Accept changes reported by an offline client.

    Reported files are marked ``synced``, except files in ``error``:
    those only leave that state through conflict resolution.

    Args:
        user: Caller (must own every reported file).
        file_ids: Files the client changed.

    Returns:
        Nodes that were marked synced.
    """
    with transaction.atomic():
        nodes = [
            get_owned_node(user, file_id, lock=True)
            for file_id in dict.fromkeys(file_ids)
        ]
        accepted = [
            node for node in nodes if node.sync_status != SyncStatus.ERROR
        ]
        FileNode.all_objects.filter(
            id__in=[node.id for node in accepted],
        ).update(sync_status=SyncStatus.SYNCED, modified_at=timezone.now())
        for node in accepted:
            node.sync_status = SyncStatus.SYNCED
            events.emit(events.FILE_UPDATED, user.id, node.id, 'synced')

    if len(accepted) != len(nodes):
        logger.info(
            'Ignored %d reported changes on conflicted files',
            len(nodes) - len(accepted),
        )
    return accepted


def set_offline_available(
    user: _User,
    file_id: uuid.UUID,
    enabled: bool,
) -> FileNode:
    """Flag a file for offline availability.

    Args:
        user: Caller (must own the file).
        file_id: File to flag.
        enabled: Whether the file should be kept offline.

    Returns:
        Updated FileNode.
    """
    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        node.offline_available = enabled
        node.save(update_fields=['offline_available', 'modified_at'])

    events.emit(
        events.FILE_UPDATED,
        user.id,
        node.id,
        'offline',
        enabled=enabled,
    )
    return node


def offline_manifest(user: _User, limit: int = 20) -> list[OfflineItem]:
    """Describe the caller's recent files for offline clients.

    Args:
        user: Caller.
        limit: Number of recent files to include.

    Returns:
        Manifest items with short-lived preview URLs.
    """
    storage = get_storage()
    ttl = min(600, settings.DRIVE_SIGNED_URL_TTL)
    return [
        OfflineItem(
            id=node.id,
            name=node.name,
            size_bytes=node.size_bytes,
            mime_type=node.mime_type,
            preview_url=(
                storage.signed_url(node.storage_path, ttl)
                if node.storage_path else None
            ),
            offline=node.offline_available,
        )
        for node in _recent_files(user, limit)
    ]
