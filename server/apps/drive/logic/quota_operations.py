"""Business logic for storage quota operations."""

import logging
from typing import Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum  # noqa: WPS347

from server.apps.drive.exceptions import QuotaExceededError
from server.apps.drive.models import FileNode, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226

logger = logging.getLogger(__name__)


def get_or_create_quota(user: _User) -> UserQuota:
    """Get or create quota for user (on-demand creation).

    Args:
        user: User to get quota for.

    Returns:
        UserQuota instance for the user.
    """
    quota, created = UserQuota.objects.get_or_create(user=user)
    if created:
        logger.info(
            'Created quota for user %s: %d bytes',
            user.username,
            quota.quota_bytes,
        )
    return quota


def reserve(user: _User, delta_bytes: int) -> UserQuota:
    """Atomically apply a usage change with admission control.

    The quota row is locked for the duration of the surrounding
    transaction, so concurrent reservations for one user are serialized.
    Usage never drops below zero. Growth beyond the limit is rejected
    without touching the ledger; shrinking is always allowed.

    Args:
        user: User whose ledger changes.
        delta_bytes: Bytes to add (positive) or release (negative).

    Returns:
        Updated UserQuota.

    Raises:
        QuotaExceededError: If a positive delta would exceed the limit.
    """
    with transaction.atomic():
        get_or_create_quota(user)
        quota = UserQuota.objects.select_for_update().get(user=user)

        if delta_bytes > 0 and not quota.has_space_for(delta_bytes):
            logger.warning(
                'Quota exceeded for user %s: need %d, have %d available',
                user.username,
                delta_bytes,
                quota.available_bytes(),
            )
            raise QuotaExceededError(
                quota_bytes=quota.quota_bytes,
                used_bytes=quota.used_bytes,
                required_bytes=delta_bytes,
            )

        candidate = max(0, quota.used_bytes + delta_bytes)
        if candidate != quota.used_bytes:
            quota.used_bytes = candidate
            quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.debug(
        'Reserved %d bytes for user %s (used: %d)',
        delta_bytes,
        user.username,
        quota.used_bytes,
    )
    return quota


def release(user: _User, size_bytes: int) -> UserQuota:
    """Give storage back to a user, clamping usage at zero.

    Args:
        user: User whose usage shrinks.
        size_bytes: Bytes to release.

    Returns:
        Updated UserQuota.
    """
    return reserve(user, -abs(size_bytes))


def set_quota_limit(user: _User, quota_bytes: int) -> UserQuota:
    """Change a user's storage limit.

    The new limit must cover what the user already stores; usage is
    never left above the limit by this call.

    Args:
        user: User to update.
        quota_bytes: New limit in bytes.

    Returns:
        Updated UserQuota.

    Raises:
        ValidationError: If the limit is not positive or is below the
            current usage.
    """
    if quota_bytes <= 0:
        raise ValidationError('Quota limit must be positive')

    with transaction.atomic():
        get_or_create_quota(user)
        quota = UserQuota.objects.select_for_update().get(user=user)
        if quota_bytes < quota.used_bytes:
            raise ValidationError(
                f'Quota limit {quota_bytes} is below current usage '
                f'{quota.used_bytes}',
                code='below_usage',
            )
        old_limit = quota.quota_bytes
        quota.quota_bytes = quota_bytes
        quota.save(update_fields=['quota_bytes'])

    logger.info(
        'Quota limit for user %s changed: %d -> %d bytes',
        user.username,
        old_limit,
        quota_bytes,
    )
    return quota


def recalculate_usage(user: _User) -> int:
    """Recalculate user's storage usage from actual files.

    This is useful for fixing inconsistencies or after bulk operations.
    Includes files in trash since they still count against quota.

    Args:
        user: User to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    total = FileNode.all_objects.filter(
        owner=user,
        is_folder=False,
    ).aggregate(
        total=Sum('size_bytes'),
    )['total'] or 0

    with transaction.atomic():
        get_or_create_quota(user)
        quota = UserQuota.objects.select_for_update().get(user=user)
        old_usage = quota.used_bytes
        quota.used_bytes = total
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.info(
        'Recalculated usage for user %s: %d -> %d bytes',
        user.username,
        old_usage,
        total,
    )

    return total
