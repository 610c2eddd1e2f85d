"""Authorization guard for drive operations.

Every operation resolves the caller's capability on a node once, through
``authorize``. Ownership is checked here and nowhere else. Shared access
comes from the external sharing service configured in
``DRIVE_ACCESS_POLICY``: a callable ``(user_id, file_id) -> permission``
returning a permission string (e.g. 'view', 'edit') or None.
"""

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import cache
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils.module_loading import import_string

from server.apps.drive.exceptions import AccessDeniedError, NotFoundError
from server.apps.drive.models import FileNode

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)


class Capability(enum.Enum):
    """What the caller may do with a node."""

    OWNED = 'owned'
    SHARED = 'shared'
    NONE = 'none'


@dataclass(frozen=True, slots=True)
class Access:
    """Resolved capability, with the share permission when SHARED."""

    capability: Capability
    permission: str | None = None

    @property
    def can_read(self) -> bool:
        return self.capability is not Capability.NONE

    @property
    def is_owner(self) -> bool:
        return self.capability is Capability.OWNED


def no_shared_access(user_id: int, file_id: uuid.UUID) -> str | None:
    """Default sharing policy: nothing is shared."""
    return None


@cache
def _load_policy(dotted_path: str) -> Callable[[int, uuid.UUID], str | None]:
    return import_string(dotted_path)


def authorize(user: _User, node: FileNode) -> Access:
    """Resolve the caller's capability on a node.

    Args:
        user: Caller.
        node: Node being accessed.

    Returns:
        Access with capability OWNED, SHARED (with permission) or NONE.
    """
    if node.owner_id == user.id:
        return Access(Capability.OWNED)

    policy = _load_policy(settings.DRIVE_ACCESS_POLICY)
    permission = policy(user.id, node.id)
    if permission:
        return Access(Capability.SHARED, permission)
    return Access(Capability.NONE)


def _fetch(
    file_id: uuid.UUID,
    include_deleted: bool,
    lock: bool = False,
) -> FileNode | None:
    manager = FileNode.all_objects if include_deleted else FileNode.objects
    queryset = manager.select_for_update() if lock else manager.all()
    try:
        return queryset.get(id=file_id)
    except (FileNode.DoesNotExist, ValueError, ValidationError):
        # Malformed ids are reported like missing ones
        return None


def get_owned_node(
    user: _User,
    file_id: uuid.UUID,
    include_deleted: bool = False,
    lock: bool = False,
) -> FileNode:
    """Get a node the caller owns, for mutation.

    Missing and foreign nodes are reported the same way so callers cannot
    discover other users' files.

    Args:
        user: Caller.
        file_id: Node ID.
        include_deleted: Also look in the trash.
        lock: Lock the row until the surrounding transaction ends.

    Returns:
        FileNode owned by the caller.

    Raises:
        NotFoundError: If the node is missing or not owned by the caller.
    """
    node = _fetch(file_id, include_deleted, lock=lock)
    if node is None or not authorize(user, node).is_owner:
        logger.debug('Node %s not found for user %s', file_id, user.id)
        raise NotFoundError(f'File not found: {file_id}')
    return node


def get_readable_node(user: _User, file_id: uuid.UUID) -> FileNode:
    """Get a live node the caller owns or has been shared.

    Args:
        user: Caller.
        file_id: Node ID.

    Returns:
        FileNode readable by the caller.

    Raises:
        NotFoundError: If the node does not exist or is in the trash.
        AccessDeniedError: If the node exists but the caller has no access.
    """
    node = _fetch(file_id, include_deleted=False)
    if node is None:
        raise NotFoundError(f'File not found: {file_id}')
    if not authorize(user, node).can_read:
        logger.warning('Access denied to %s for user %s', file_id, user.id)
        raise AccessDeniedError(f'Access denied: {file_id}')
    return node
