"""Domain events emitted by the storage core.

Operations never talk to a transport. They record events that are sent
on the ``drive_event`` signal once the surrounding transaction commits;
receivers in ``signals.py`` forward them to the configured event bus.
"""

import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Final

from django.db import transaction
from django.dispatch import Signal

FILE_CREATED: Final = 'file-created'
FOLDER_CREATED: Final = 'folder-created'
FILE_UPDATED: Final = 'file-updated'
FILE_DELETED: Final = 'file-deleted'

# Sent with ``event=DomainEvent`` after commit
drive_event = Signal()


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Something that happened to a node, scoped to its owner."""

    name: str
    user_id: int
    file_id: uuid.UUID
    action: str
    payload: dict[str, Any] = field(default_factory=dict)


def emit(
    name: str,
    user_id: int,
    file_id: uuid.UUID,
    action: str,
    **payload: Any,
) -> DomainEvent:
    """Queue an event for delivery after the current transaction commits.

    Outside a transaction the event is delivered immediately.

    Args:
        name: Event name (e.g., 'file-updated').
        user_id: Owner the event is scoped to.
        file_id: Affected node.
        action: What happened (e.g., 'rename').
        payload: Extra event data.

    Returns:
        The queued event.
    """
    event = DomainEvent(
        name=name,
        user_id=user_id,
        file_id=file_id,
        action=action,
        payload=payload,
    )
    transaction.on_commit(
        partial(drive_event.send_robust, sender=DomainEvent, event=event),
    )
    return event
