"""Custom storage backend for S3-compatible storage."""

import logging
from collections.abc import Iterable
from typing import Any, Final, final, override

from django.core.files.storage import default_storage
from storages.backends.s3 import S3Storage
from storages.utils import clean_name

from server.apps.drive.exceptions import StorageBackendError

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
_DELETE_BATCH_SIZE: Final = 1000


@final
class FileStorage(S3Storage):
    """S3 storage backend for drive content.

    Extends django-storages S3Storage with:
    - Failures surfaced as StorageBackendError
    - Rollback support for failed DB operations
    - Server-side copy, batch delete and signed URLs
    """

    @override
    def save(  # noqa: WPS211
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save content to S3 with error handling and logging.

        Args:
            name: Storage path for the object.
            content: File content (file-like object).
            max_length: Optional maximum length for the filename.

        Returns:
            Actual storage path used (may differ from name if conflicts).

        Raises:
            StorageBackendError: If S3 upload fails.
        """
        try:
            logger.info('Uploading object to storage: %s', name)
            saved_name = super().save(name, content, max_length)
        except Exception as error:
            logger.exception('Failed to upload object to storage: %s', name)
            raise StorageBackendError(
                f'Failed to upload object: {name}',
            ) from error
        logger.info('Successfully uploaded object: %s', saved_name)
        return saved_name

    @override
    def delete(self, name: str) -> None:
        """Delete object from S3 with error handling and logging.

        Args:
            name: Storage path of object to delete.

        Raises:
            StorageBackendError: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from storage: %s', name)
            super().delete(name)
        except Exception as error:
            logger.exception('Failed to delete object from storage: %s', name)
            raise StorageBackendError(
                f'Failed to delete object: {name}',
            ) from error
        logger.info('Successfully deleted object: %s', name)

    def delete_many(self, names: Iterable[str]) -> None:
        """Delete several objects with batched DeleteObjects requests.

        Args:
            names: Storage paths to delete. Duplicates are ignored.

        Raises:
            StorageBackendError: If any batch fails.
        """
        keys = sorted({self._normalize_name(clean_name(name)) for name in names})
        for start in range(0, len(keys), _DELETE_BATCH_SIZE):
            batch = keys[start:start + _DELETE_BATCH_SIZE]
            try:
                logger.info('Deleting %d objects from storage', len(batch))
                response = self.bucket.delete_objects(
                    Delete={
                        'Objects': [{'Key': key} for key in batch],
                        'Quiet': True,
                    },
                )
            except Exception as error:
                logger.exception('Batch delete failed: %s', batch)
                raise StorageBackendError(
                    f'Failed to delete {len(batch)} objects',
                ) from error

            errors = response.get('Errors') or []
            if errors:
                logger.error('Batch delete reported errors: %s', errors)
                raise StorageBackendError(
                    f'Failed to delete {len(errors)} objects',
                )

    def read_bytes(self, name: str) -> bytes:
        """Read a whole object.

        Args:
            name: Storage path of the object.

        Returns:
            Object content.

        Raises:
            StorageBackendError: If S3 download fails.
        """
        try:
            with self.open(name, 'rb') as content:
                return content.read()
        except Exception as error:
            logger.exception('Failed to read object: %s', name)
            raise StorageBackendError(f'Failed to read object: {name}') from error

    def copy_object(self, source: str, destination: str) -> str:
        """Copy an object inside the bucket (server-side).

        The destination gets its own independent object, so later deletes
        of the source never affect the copy.

        Args:
            source: Source storage path.
            destination: Destination storage path.

        Returns:
            Destination storage path.

        Raises:
            StorageBackendError: If the copy fails.
        """
        try:
            logger.info('Copying object: %s -> %s', source, destination)
            copy_source = {
                'Bucket': self.bucket_name,
                'Key': self._normalize_name(clean_name(source)),
            }
            self.bucket.copy(
                copy_source,
                self._normalize_name(clean_name(destination)),
            )
        except Exception as error:
            logger.exception('Copy failed: %s -> %s', source, destination)
            raise StorageBackendError(
                f'Failed to copy object: {source}',
            ) from error
        logger.info('Copied object: %s -> %s', source, destination)
        return destination

    def signed_url(
        self,
        name: str,
        ttl: int,
        force_download: bool = False,
    ) -> str:
        """Create a pre-signed GET URL for an object.

        Args:
            name: Storage path of the object.
            ttl: URL lifetime in seconds.
            force_download: Ask clients to save instead of display.

        Returns:
            Signed URL.
        """
        parameters = None
        if force_download:
            parameters = {'ResponseContentDisposition': 'attachment'}
        return self.url(name, parameters=parameters, expire=ttl)

    def rollback_upload(self, name: str) -> None:
        """Delete uploaded object for DB transaction rollback.

        This method is called when a database transaction fails after
        an object has been successfully uploaded to S3. It attempts to
        delete the object to maintain consistency.

        This is a best-effort operation - if deletion fails, the error
        is logged but not raised, as the DB rollback has already occurred.

        Args:
            name: Storage path of object to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting object: %s', name)
            self.delete(name)
        except StorageBackendError:
            # The object stays orphaned; recalculation never counts it
            logger.exception(
                'Failed to rollback upload, orphaned object: %s',
                name,
            )


def get_storage() -> FileStorage:
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]
