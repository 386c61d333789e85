"""Management command to create the user files bucket."""

import logging
from typing import TYPE_CHECKING, Any

from django.core.files.storage import default_storage
from django.core.management.base import BaseCommand, CommandError

from skydrive.apps.files.exceptions import StoreError

if TYPE_CHECKING:
    from skydrive.apps.files.infrastructure.storage import FileStorage

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Create the configured S3 bucket if it does not exist yet."""

    help = 'Create the user files bucket if it is missing'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report whether the bucket is missing',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the object store cannot be reached.
        """
        dry_run = options['dry_run']
        storage: FileStorage = default_storage  # type: ignore[assignment]
        bucket_name = storage.bucket_name

        try:
            missing = storage.ensure_bucket(dry_run=dry_run)
        except StoreError as exc:
            logger.exception('Failed to ensure bucket: %s', bucket_name)
            raise CommandError(f'Cannot ensure bucket {bucket_name}: {exc}') from exc

        if not missing:
            self.stdout.write(f'Bucket {bucket_name} already exists')
        elif dry_run:
            self.stdout.write(f'Would create bucket {bucket_name}')
        else:
            self.stdout.write(
                self.style.SUCCESS(f'Created bucket {bucket_name}'),
            )
