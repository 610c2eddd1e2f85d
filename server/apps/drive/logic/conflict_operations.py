"""Business logic for settling sync conflicts."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from server.apps.drive import events
from server.apps.drive.infrastructure.metadata import (
    prefixed_node_name,
    validate_node_name,
)
from server.apps.drive.logic.access import get_owned_node
from server.apps.drive.logic.tree_operations import duplicate_file
from server.apps.drive.models import (
    ConflictStatus,
    FileNode,
    ResolutionStrategy,
    SyncStatus,
)

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of a conflict resolution.

    ``copy`` is only set by the keep-both strategy.
    """

    file: FileNode
    copy: FileNode | None = None


def resolve_conflict(
    user: _User,
    file_id: uuid.UUID,
    strategy: str,
    new_name: str | None = None,
) -> Resolution:
    """Settle a detected conflict and bring the file back to synced.

    ``keep_local`` and ``keep_remote`` converge: there is a single stored
    replica, so the file is simply marked resolved. ``keep_both`` also
    creates an independent copy with its own version 1, charged to the
    caller's quota.

    Resolving a file that is not in ``error`` is a no-op and returns the
    file unchanged.

    Args:
        user: Caller (must own the file).
        file_id: Conflicted file.
        strategy: One of ResolutionStrategy values.
        new_name: Name of the keep-both copy, defaults to 'Copy of <name>'.

    Returns:
        Resolution with the file and the optional copy.

    Raises:
        ValidationError: If the strategy or the copy name is invalid.
        NotFoundError: If the file is missing or foreign.
        QuotaExceededError: If keep-both lacks space for the copy.
        StorageBackendError: If keep-both cannot copy the content.
    """
    if strategy not in ResolutionStrategy.values:
        raise ValidationError(
            f'Unknown resolution strategy: {strategy}',
            code='invalid_strategy',
        )
    copy_name = validate_node_name(new_name) if new_name else None

    with transaction.atomic():
        node = get_owned_node(user, file_id, lock=True)
        if node.sync_status != SyncStatus.ERROR:
            logger.info('File %s has no conflict to resolve', node.id)
            return Resolution(file=node)

        copy = None
        if strategy == ResolutionStrategy.KEEP_BOTH:
            copy = duplicate_file(
                user,
                node,
                copy_name or prefixed_node_name('Copy of ', node.name),
                node.parent,
                comment='Created by conflict resolution (keep both)',
            )

        node.sync_status = SyncStatus.SYNCED
        node.conflict_status = ConflictStatus.RESOLVED
        node.conflict_strategy = strategy
        node.conflict_at = timezone.now()
        node.save(update_fields=[
            'sync_status',
            'conflict_status',
            'conflict_strategy',
            'conflict_at',
            'modified_at',
        ])

    logger.info('Conflict on file %s resolved with %s', node.id, strategy)
    events.emit(
        events.FILE_UPDATED,
        user.id,
        node.id,
        'resolved',
        strategy=strategy,
        copy_id=copy.id if copy else None,
    )
    return Resolution(file=node, copy=copy)
