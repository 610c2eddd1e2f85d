"""Management command to rebuild quota usage from stored files."""

from typing import Any, final, override

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from server.apps.drive.logic.quota_operations import recalculate_usage


@final
class Command(BaseCommand):
    """Recompute used bytes for one user or for everyone."""

    help = 'Recalculate storage usage from file sizes (trash included)'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--user',
            type=str,
            default=None,
            help='Username to recalculate (default: all users)',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        user_model = get_user_model()
        users = user_model.objects.order_by('pk')
        if options['user']:
            users = users.filter(username=options['user'])
            if not users.exists():
                raise CommandError(f'User not found: {options["user"]}')

        count = 0
        for user in users:
            total = recalculate_usage(user)
            self.stdout.write(f'{user.username}: {total} bytes')
            count += 1

        self.stdout.write(
            self.style.SUCCESS(f'Recalculated quota for {count} users'),
        )
