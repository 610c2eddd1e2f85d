"""Management command to clean up old nodes from trash."""

from datetime import timedelta
from typing import Any, Final, final, override

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from server.apps.drive.logic.trash_operations import (
    expired_trash,
    purge_older_than,
)

_DEFAULT_BATCH_SIZE: Final = 1000


@final
class Command(BaseCommand):
    """Permanently delete nodes that have been in trash past retention."""

    help = 'Clean up old files from trash (default: DRIVE_TRASH_RETENTION_DAYS)'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Retention in days (default: DRIVE_TRASH_RETENTION_DAYS)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max nodes to process (default: {_DEFAULT_BATCH_SIZE})',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        days = options['days']
        if days is None:
            days = settings.DRIVE_TRASH_RETENTION_DAYS
        batch_size = options['batch_size']

        cutoff = timezone.now() - timedelta(days=days)

        self.stdout.write(
            f'Looking for files deleted before {cutoff} '
            f'(older than {days} days)',
        )

        if options['dry_run']:
            self._dry_run(cutoff, batch_size)
            return

        report = purge_older_than(cutoff, batch_size=batch_size)
        if report.failed:
            self.stderr.write(f'Failed to purge {report.failed} nodes')
        self.stdout.write(
            self.style.SUCCESS(
                f'Purged {report.purged} files from trash, '
                f'{report.failed} failed',
            ),
        )

    def _dry_run(self, cutoff: Any, batch_size: int) -> None:
        count = 0
        for node in expired_trash(cutoff, batch_size):
            self.stdout.write(
                f'Would delete: {node.name} '
                f'(user: {node.owner.username}, '
                f'deleted: {node.deleted_at})',
            )
            count += 1

        self.stdout.write(
            self.style.SUCCESS(f'Would purge {count} files from trash'),
        )
