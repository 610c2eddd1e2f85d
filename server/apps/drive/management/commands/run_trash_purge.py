"""Django management command to run the periodic trash purge."""

import logging
import threading
from typing import Any, final, override

from django.conf import settings
from django.core.management.base import BaseCommand

from server.apps.drive.infrastructure.scheduler import get_scheduler
from server.apps.drive.logic.trash_operations import purge_expired_trash

logger = logging.getLogger(__name__)

_JOB_ID = 'drive-trash-purge'


@final
class Command(BaseCommand):
    """Purge expired trash on an interval until interrupted."""

    help = 'Run the periodic trash purge in the foreground'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--interval-hours',
            type=float,
            default=None,
            help='Hours between sweeps '
                 '(default: DRIVE_TRASH_PURGE_INTERVAL_HOURS)',
        )
        parser.add_argument(
            '--run-now',
            action='store_true',
            default=False,
            help='Run one sweep immediately before waiting',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            args: Positional arguments.
            options: Keyword arguments from command line.
        """
        hours = (
            options['interval_hours']
            or settings.DRIVE_TRASH_PURGE_INTERVAL_HOURS
        )

        if options['run_now']:
            report = purge_expired_trash()
            self.stdout.write(
                f'Purged {report.purged} files from trash, '
                f'{report.failed} failed',
            )

        scheduler = get_scheduler()
        scheduler.schedule_interval(hours, purge_expired_trash, _JOB_ID)
        self.stdout.write(
            self.style.SUCCESS(f'Trash purge scheduled every {hours} hours'),
        )

        try:
            logger.info('Trash purge worker running')
            self._wait()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down...'))
        finally:
            scheduler.shutdown()
            self.stdout.write(self.style.SUCCESS('Trash purge stopped'))

    def _wait(self) -> None:
        threading.Event().wait()
