"""Signal handlers for drive app."""

import logging
from collections.abc import Callable
from functools import cache

from django.conf import settings
from django.dispatch import receiver
from django.utils.module_loading import import_string

from server.apps.drive.events import DomainEvent, drive_event

logger = logging.getLogger(__name__)


@cache
def _event_bus(dotted_path: str) -> Callable[[DomainEvent], object]:
    return import_string(dotted_path)


@receiver(drive_event, sender=DomainEvent)
def log_drive_event(
    sender: type[DomainEvent],
    event: DomainEvent,
    **kwargs: object,
) -> None:
    """Log every committed domain event."""
    logger.info(
        'Drive event %s/%s: file=%s user=%s',
        event.name,
        event.action,
        event.file_id,
        event.user_id,
    )


@receiver(drive_event, sender=DomainEvent)
def forward_to_event_bus(
    sender: type[DomainEvent],
    event: DomainEvent,
    **kwargs: object,
) -> None:
    """Forward a committed event to the external bus.

    The bus is a dotted path in ``DRIVE_EVENT_BUS`` pointing at a callable
    that takes the event. Delivery is fire-and-forget: failures are
    logged and the event is dropped.

    Args:
        sender: DomainEvent class.
        event: Event to forward.
        **kwargs: Additional signal arguments.
    """
    dotted_path = settings.DRIVE_EVENT_BUS
    if not dotted_path:
        return

    try:
        _event_bus(dotted_path)(event)
    except Exception:
        logger.exception(
            'Failed to forward event %s for file %s',
            event.name,
            event.file_id,
        )
