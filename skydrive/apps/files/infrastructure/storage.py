"""Object store backend for S3-compatible storage.

The storage core talks to the bucket through a handful of primitives
(put, stat, list, delete, copy, get). Keys passed here are absolute: the
caller is responsible for scoping them to a user root.
"""

import itertools
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from operator import attrgetter
from types import TracebackType
from typing import Any, BinaryIO, Final, Self, final

from botocore.exceptions import BotoCoreError, ClientError
from storages.backends.s3 import S3Storage

from skydrive.apps.files.descriptors import ObjectEntry
from skydrive.apps.files.exceptions import ResourceNotFoundError, StoreError
from skydrive.apps.files.infrastructure.metadata import detect_mime_type

logger = logging.getLogger(__name__)

_DIRECTORY_SUFFIX: Final = '/'
_DEFAULT_CHUNK_SIZE: Final = 8192

# Error codes S3 and MinIO use for a missing key or bucket
_NOT_FOUND_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))
_MISSING_BUCKET_CODES: Final = frozenset(('404', 'NoSuchBucket', 'NotFound'))

# us-east-1 rejects an explicit LocationConstraint
_DEFAULT_REGION: Final = 'us-east-1'


def _error_code(error: ClientError) -> str:
    return str(error.response.get('Error', {}).get('Code', ''))


@contextmanager
def _translate_errors(operation: str, key: str) -> Iterator[None]:
    """Map botocore failures onto the storage error taxonomy.

    Args:
        operation: Primitive name used in logs and StoreError.
        key: Object key or prefix being accessed.

    Yields:
        Nothing; wraps the store call.

    Raises:
        ResourceNotFoundError: If the store reports a missing key.
        StoreError: For any other store failure.
    """
    try:
        yield
    except ClientError as error:
        if _error_code(error) in _NOT_FOUND_CODES:
            logger.debug('Object not found during %s: %s', operation, key)
            raise ResourceNotFoundError(key) from error
        logger.exception('Object store %s failed: %s', operation, key)
        raise StoreError(operation, key) from error
    except BotoCoreError as error:
        logger.exception('Object store %s failed: %s', operation, key)
        raise StoreError(operation, key) from error


@final
class ObjectStream:
    """Single-pass byte stream over an object body.

    The underlying HTTP connection is released when the stream is
    exhausted, closed, used as a context manager, or when a partially
    consumed iterator is discarded.
    """

    def __init__(
        self,
        key: str,
        body: Any,
        size: int,
        content_type: str,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize stream.

        Args:
            key: Object key the body belongs to.
            body: botocore StreamingBody.
            size: Content length reported by the store.
            content_type: Content type reported by the store.
            chunk_size: Size of chunks yielded by iteration.
        """
        self.key = key
        self.size = size
        self.content_type = content_type
        self._body = body
        self._chunk_size = chunk_size
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __iter__(self) -> Iterator[bytes]:
        """Yield the object content in chunks, then close."""
        try:
            while True:
                chunk = self.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        """Whether the underlying body has been released."""
        return self._closed

    def read(self, amt: int | None = None) -> bytes:
        """Read up to ``amt`` bytes.

        Args:
            amt: Maximum number of bytes, everything left when None.

        Returns:
            Bytes read; empty at the end of the object.

        Raises:
            ValueError: If the stream is already closed.
            StoreError: If the connection fails mid-read.
        """
        if self._closed:
            raise ValueError(f'Stream for {self.key} is closed')
        try:
            with _translate_errors('get', self.key):
                return self._body.read(amt)
        except StoreError:
            self.close()
            raise

    def close(self) -> None:
        """Release the underlying connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._body.close()
        logger.debug('Closed object stream: %s', self.key)


@final
class FileStorage(S3Storage):
    """Custom S3 storage backend for user files.

    Extends django-storages S3Storage with the key-level primitives the
    storage core needs. Every failure is logged and translated into
    ResourceNotFoundError or StoreError; nothing is retried here.
    """

    @property
    def _client(self) -> Any:
        return self.connection.meta.client

    def put_object(
        self,
        key: str,
        content: BinaryIO,
        size: int | None = None,
        content_type: str | None = None,
    ) -> None:
        """Stream content into a new object.

        Uses boto3 managed transfer, so large content is sent as a
        multipart upload and only becomes visible once complete.

        Args:
            key: Destination object key.
            content: Readable file-like object.
            size: Content length if known (logging only).
            content_type: MIME type; guessed from the key when omitted.

        Raises:
            StoreError: If the upload fails.
        """
        content_type = content_type or detect_mime_type(key)
        logger.info('Uploading object: %s (%s bytes)', key, size)
        with _translate_errors('put', key):
            self.bucket.upload_fileobj(
                content,
                key,
                ExtraArgs={'ContentType': content_type},
            )
        logger.info('Successfully uploaded object: %s', key)

    def put_marker(self, key: str) -> None:
        """Write a zero-byte directory marker.

        Args:
            key: Marker key, must end with '/'.

        Raises:
            ValueError: If the key is not a directory key.
            StoreError: If the write fails.
        """
        if not key.endswith(_DIRECTORY_SUFFIX):
            raise ValueError(f'Directory marker must end with /: {key}')
        logger.debug('Writing directory marker: %s', key)
        with _translate_errors('put', key):
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=b'',
            )

    def stat_object(self, key: str) -> int:
        """Get the size of an object.

        Args:
            key: Object key.

        Returns:
            Content length in bytes.

        Raises:
            ResourceNotFoundError: If no object has this key.
            StoreError: If the probe fails for another reason.
        """
        with _translate_errors('stat', key):
            response = self._client.head_object(
                Bucket=self.bucket_name,
                Key=key,
            )
        return int(response['ContentLength'])

    def list_objects(
        self,
        prefix: str,
        *,
        recursive: bool = True,
        limit: int | None = None,
    ) -> Iterator[ObjectEntry]:
        """List objects under a prefix in key order.

        Non-recursive listings use '/' as delimiter, so nested content is
        reported once as a common prefix (a directory entry).

        Args:
            prefix: Key prefix to list.
            recursive: Whether to descend into nested prefixes.
            limit: Stop after this many entries.

        Yields:
            ObjectEntry rows.

        Raises:
            StoreError: If listing fails.
        """
        entries = self._iter_listing(prefix, recursive=recursive, limit=limit)
        if limit is not None:
            entries = itertools.islice(entries, limit)
        yield from entries

    def delete_object(self, key: str) -> None:
        """Delete a single object.

        Deleting a missing key succeeds, matching S3 semantics.

        Args:
            key: Object key.

        Raises:
            StoreError: If the delete fails.
        """
        logger.info('Deleting object: %s', key)
        with _translate_errors('delete', key):
            self._client.delete_object(Bucket=self.bucket_name, Key=key)

    def copy_object(self, source: str, destination: str) -> None:
        """Server-side copy of an object, overwriting the destination.

        Args:
            source: Source object key.
            destination: Destination object key.

        Raises:
            ResourceNotFoundError: If the source does not exist.
            StoreError: If the copy fails.
        """
        logger.info('Copying object: %s -> %s', source, destination)
        copy_source = {
            'Bucket': self.bucket_name,
            'Key': source,
        }
        with _translate_errors('copy', source):
            self.bucket.copy(copy_source, destination)

    def open_object(
        self,
        key: str,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
    ) -> ObjectStream:
        """Open a read stream over an object.

        Args:
            key: Object key.
            chunk_size: Chunk size used when iterating the stream.

        Returns:
            ObjectStream the caller must close or exhaust.

        Raises:
            ResourceNotFoundError: If no object has this key.
            StoreError: If the request fails.
        """
        logger.debug('Opening object stream: %s', key)
        with _translate_errors('get', key):
            response = self._client.get_object(
                Bucket=self.bucket_name,
                Key=key,
            )
        return ObjectStream(
            key=key,
            body=response['Body'],
            size=int(response['ContentLength']),
            content_type=response.get('ContentType', ''),
            chunk_size=chunk_size,
        )

    def ensure_bucket(self, *, dry_run: bool = False) -> bool:
        """Create the configured bucket if it does not exist.

        Args:
            dry_run: Only report whether the bucket is missing.

        Returns:
            True if the bucket was missing (and created unless dry_run).

        Raises:
            StoreError: If the bucket cannot be probed or created.
        """
        try:
            self._client.head_bucket(Bucket=self.bucket_name)
        except ClientError as error:
            if _error_code(error) not in _MISSING_BUCKET_CODES:
                logger.exception('Failed to probe bucket: %s', self.bucket_name)
                raise StoreError('head_bucket', self.bucket_name) from error
        else:
            return False

        if dry_run:
            return True

        logger.info('Creating bucket: %s', self.bucket_name)
        create_args: dict[str, Any] = {'Bucket': self.bucket_name}
        if self.region_name and self.region_name != _DEFAULT_REGION:
            create_args['CreateBucketConfiguration'] = {
                'LocationConstraint': self.region_name,
            }
        with _translate_errors('create_bucket', self.bucket_name):
            self._client.create_bucket(**create_args)
        return True

    def _iter_listing(
        self,
        prefix: str,
        *,
        recursive: bool,
        limit: int | None,
    ) -> Iterator[ObjectEntry]:
        params: dict[str, Any] = {
            'Bucket': self.bucket_name,
            'Prefix': prefix,
        }
        if not recursive:
            params['Delimiter'] = _DIRECTORY_SUFFIX
        if limit is not None:
            params['PaginationConfig'] = {'PageSize': limit}

        paginator = self._client.get_paginator('list_objects_v2')
        with _translate_errors('list', prefix):
            for page in paginator.paginate(**params):
                yield from _page_entries(page)


def _page_entries(page: dict[str, Any]) -> list[ObjectEntry]:
    """Merge objects and common prefixes of one listing page by key."""
    entries = [
        ObjectEntry(
            key=item['Key'],
            size=int(item['Size']),
            is_directory=item['Key'].endswith(_DIRECTORY_SUFFIX),
        )
        for item in page.get('Contents', [])
    ]
    entries.extend(
        ObjectEntry(key=common['Prefix'], size=None, is_directory=True)
        for common in page.get('CommonPrefixes', [])
    )
    entries.sort(key=attrgetter('key'))
    return entries
