"""Business logic for file and directory operations.

The object store only knows flat keys. Directories are emulated with key
prefixes: a directory exists when at least one key starts with its prefix,
and is made explicit by a zero-byte marker object whose key ends with '/'.

Multi-object operations (directory delete, move and zip) run object by
object in listing order and stop at the first failure. They are NOT
transactional: objects handled before the failure stay handled. Each step
is idempotent (copy overwrites, deleting a missing key succeeds), so a
failed operation can be retried from the start.
"""

import functools
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Final, final

from django.conf import settings
from django.core.files.storage import default_storage

from skydrive.apps.files.descriptors import ObjectEntry, ResourceDescriptor
from skydrive.apps.files.exceptions import (
    FileStorageError,
    InvalidPathError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from skydrive.apps.files.infrastructure.archive import ArchiveMember, stream_zip
from skydrive.apps.files.infrastructure.metadata import (
    detect_mime_type,
    get_content_size,
    parent_directories,
)
from skydrive.apps.files.logic.path_resolver import (
    PathResolver,
    UserId,
    as_directory,
)

if TYPE_CHECKING:
    from skydrive.apps.files.infrastructure.storage import (
        FileStorage,
        ObjectStream,
    )

logger = logging.getLogger(__name__)

_PATH_SEPARATOR: Final = '/'
_ROOT_ARCHIVE_NAME: Final = 'root'


def _get_storage() -> 'FileStorage':
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


@final
@dataclass(frozen=True, slots=True)
class SearchPredicate:
    """Decides which listing entries a search query matches.

    Matching is a case-insensitive substring test on the full object key,
    root prefix included. With ``match_full_key`` disabled only the path
    relative to the user root is tested, so the prefix never matches.
    Directory markers only match when enabled.
    """

    include_directories: bool = False
    match_full_key: bool = True

    @classmethod
    def from_settings(cls) -> 'SearchPredicate':
        """Build predicate from SKYDRIVE_SEARCH_* settings."""
        return cls(
            include_directories=settings.SKYDRIVE_SEARCH_INCLUDE_DIRECTORIES,
            match_full_key=settings.SKYDRIVE_SEARCH_MATCH_FULL_KEY,
        )

    def matches(
        self,
        entry: ObjectEntry,
        relative_path: str,
        query: str,
    ) -> bool:
        """Check whether a listing entry matches the query.

        Args:
            entry: Listing row with the full object key.
            relative_path: Entry path relative to the user root.
            query: Search string.

        Returns:
            True if the entry should be returned.
        """
        if entry.is_directory and not self.include_directories:
            return False
        target = entry.key if self.match_full_key else relative_path
        return query.lower() in target.lower()


@final
class ResourceManager:
    """Directory-emulation operations for one object store.

    The caller identity is passed explicitly to every operation. All paths
    go through the PathResolver before the store is touched.
    """

    def __init__(
        self,
        storage: 'FileStorage | None' = None,
        resolver: PathResolver | None = None,
        search_predicate: SearchPredicate | None = None,
        chunk_size: int | None = None,
    ) -> None:
        """Initialize manager.

        Args:
            storage: Object store backend, defaults to default_storage.
            resolver: Path resolver, defaults to the settings template.
            search_predicate: Search filter, defaults to settings.
            chunk_size: Read size for streams, defaults to
                SKYDRIVE_STREAM_CHUNK_SIZE.
        """
        self._storage = _get_storage() if storage is None else storage
        self._resolver = PathResolver() if resolver is None else resolver
        if search_predicate is None:
            search_predicate = SearchPredicate.from_settings()
        self._search_predicate = search_predicate
        self._chunk_size = chunk_size or settings.SKYDRIVE_STREAM_CHUNK_SIZE

    @property
    def resolver(self) -> PathResolver:
        """Path resolver used to scope keys."""
        return self._resolver

    def upload_file(  # noqa: WPS211
        self,
        user_id: UserId,
        directory: str,
        file_name: str,
        content: BinaryIO,
        size: int | None = None,
        content_type: str | None = None,
    ) -> ResourceDescriptor:
        """Upload a new file, refusing to overwrite.

        Args:
            user_id: Owner of the file.
            directory: Target directory ('' for root).
            file_name: File name, may contain sub-directories (a/b.txt).
            content: Readable file-like object.
            size: Content length if known.
            content_type: MIME type, guessed from the name when omitted.

        Returns:
            FILE descriptor of the stored object.

        Raises:
            InvalidPathError: If the target path is malformed.
            AccessDeniedError: If the target is outside the user root.
            ResourceAlreadyExistsError: If the target already exists or one
                of its ancestors is a file.
            StoreError: If the store fails.
        """
        if not file_name or file_name.endswith(_PATH_SEPARATOR):
            raise InvalidPathError(file_name, 'file name is required')

        relative_path = self._resolver.normalize(
            user_id,
            self._resolver.join_paths(directory, file_name),
        )
        key = self._resolver.to_key(user_id, relative_path)

        self._ensure_absent(user_id, relative_path)
        self._ensure_parent_markers(user_id, relative_path)

        if size is None:
            size = get_content_size(content)
        self._storage.put_object(
            key,
            content,
            size=size,
            content_type=content_type or detect_mime_type(file_name),
        )
        if size is None:
            size = self._storage.stat_object(key)

        logger.info(
            'Uploaded file for user %s: %s (%d bytes)',
            user_id,
            relative_path,
            size,
        )
        return ResourceDescriptor.for_file(relative_path, size)

    def get_resource_info(
        self,
        user_id: UserId,
        relative_path: str,
    ) -> ResourceDescriptor:
        """Describe a file or directory.

        A path is a file if an object with its exact key exists, otherwise
        a directory if any key starts with path + '/'.

        Args:
            user_id: Owner of the resource.
            relative_path: Path relative to the user root.

        Returns:
            FILE or DIRECTORY descriptor.

        Raises:
            ResourceNotFoundError: If neither probe finds anything.
        """
        normalized = self._resolver.normalize(user_id, relative_path)
        return self._describe_path(user_id, normalized)

    def list_directory(
        self,
        user_id: UserId,
        relative_path: str = '',
        recursive: bool = False,
    ) -> list[ResourceDescriptor]:
        """List the content of a directory.

        Non-recursive listings only contain direct children: nested
        content is represented by its top-level sub-directory.

        Args:
            user_id: Owner of the directory.
            relative_path: Directory path ('' for root).
            recursive: Whether to include all descendants.

        Returns:
            Descriptors in store listing order (lexicographic by key).
        """
        prefix = self._resolver.resolve_directory(user_id, relative_path)
        logger.debug('Listing directory: %s (recursive=%s)', prefix, recursive)

        descriptors = []
        for entry in self._storage.list_objects(prefix, recursive=recursive):
            remainder = entry.key[len(prefix):]
            if not remainder:
                # Marker of the listed directory itself
                continue
            nested = _PATH_SEPARATOR in remainder.rstrip(_PATH_SEPARATOR)
            if nested and not recursive:
                continue
            descriptors.append(self._describe_entry(user_id, entry))
        return descriptors

    def create_directory(
        self,
        user_id: UserId,
        relative_path: str,
    ) -> ResourceDescriptor:
        """Create a directory marker (and missing ancestor markers).

        Creating an existing directory is a no-op.

        Args:
            user_id: Owner of the directory.
            relative_path: Directory path.

        Returns:
            DIRECTORY descriptor.

        Raises:
            InvalidPathError: If the path is the root or malformed.
            ResourceAlreadyExistsError: If a file has the same name as the
                directory or one of its ancestors.
        """
        directory = as_directory(
            self._resolver.normalize(user_id, relative_path),
        )
        if not directory:
            raise InvalidPathError(
                relative_path,
                'root directory always exists',
            )

        self._ensure_no_file(user_id, directory.rstrip(_PATH_SEPARATOR))
        self._ensure_parent_markers(user_id, directory)
        self._storage.put_marker(self._resolver.to_key(user_id, directory))

        logger.info('Created directory for user %s: %s', user_id, directory)
        return ResourceDescriptor.for_directory(directory)

    def delete_resource(self, user_id: UserId, relative_path: str) -> None:
        """Delete a file, or a directory with everything below it.

        Existence is verified before anything is deleted. Directory
        deletion stops at the first failing object and leaves the
        directory partially deleted.

        Args:
            user_id: Owner of the resource.
            relative_path: Path of the file or directory.

        Raises:
            InvalidPathError: If the path is the root or malformed.
            ResourceNotFoundError: If the resource does not exist.
            StoreError: If a delete fails.
        """
        normalized = self._resolver.normalize(user_id, relative_path)
        if not normalized:
            raise InvalidPathError(
                relative_path,
                'cannot delete the root directory',
            )

        descriptor = self._describe_path(user_id, normalized)
        if descriptor.is_directory:
            self._delete_directory(user_id, descriptor.relative_path)
            return

        key = self._resolver.to_key(user_id, normalized)
        try:
            self._storage.delete_object(key)
        except ResourceNotFoundError as error:
            raise ResourceNotFoundError(normalized) from error
        logger.info('Deleted file for user %s: %s', user_id, normalized)

    def move_resource(
        self,
        user_id: UserId,
        source: str,
        destination: str,
    ) -> ResourceDescriptor:
        """Move or rename a file or directory.

        Implemented as copy + delete per object. Not atomic: a failure
        leaves some objects moved; retrying the same move is safe.

        Args:
            user_id: Owner of both paths.
            source: Current path.
            destination: New path.

        Returns:
            Descriptor of the resource at its new path.

        Raises:
            InvalidPathError: If a path is malformed, a root, or a
                directory would be moved into itself.
            ResourceNotFoundError: If the source does not exist.
            ResourceAlreadyExistsError: If the destination name is taken by
                a resource of the other kind, or one of its ancestors is a
                file.
            StoreError: If a copy or delete fails.
        """
        source_path = self._resolver.normalize(user_id, source)
        destination_path = self._resolver.normalize(user_id, destination)
        if not source_path:
            raise InvalidPathError(source, 'cannot move the root directory')
        if not destination_path:
            raise InvalidPathError(
                destination,
                'cannot replace the root directory',
            )
        if as_directory(source_path) == as_directory(destination_path):
            raise InvalidPathError(
                destination,
                'source and destination are the same',
            )

        descriptor = self._describe_path(user_id, source_path)
        if descriptor.is_directory:
            source_dir = descriptor.relative_path
            destination_dir = as_directory(destination_path)
            if destination_dir.startswith(source_dir):
                raise InvalidPathError(
                    destination,
                    'cannot move a directory into itself',
                )
            self._ensure_no_file(
                user_id,
                destination_dir.rstrip(_PATH_SEPARATOR),
            )
            self._move_directory(user_id, source_dir, destination_dir)
            return self._describe_path(user_id, destination_dir)

        if destination_path.endswith(_PATH_SEPARATOR):
            raise InvalidPathError(
                destination,
                'file destination must not end with /',
            )
        self._ensure_no_directory(user_id, destination_path)
        self._move_file(user_id, source_path, destination_path)
        return self._describe_path(user_id, destination_path)

    def download_resource(
        self,
        user_id: UserId,
        relative_path: str,
    ) -> 'ObjectStream':
        """Open a file for streaming download.

        The caller must close the returned stream (or exhaust it).

        Args:
            user_id: Owner of the file.
            relative_path: File path.

        Returns:
            Single-pass ObjectStream.

        Raises:
            InvalidPathError: If the path names a directory.
            ResourceNotFoundError: If the file does not exist.
        """
        normalized = self._resolver.normalize(user_id, relative_path)
        if not normalized or normalized.endswith(_PATH_SEPARATOR):
            raise InvalidPathError(
                relative_path,
                'directories must be downloaded as zip',
            )

        key = self._resolver.to_key(user_id, normalized)
        try:
            stream = self._storage.open_object(
                key,
                chunk_size=self._chunk_size,
            )
        except ResourceNotFoundError as error:
            raise ResourceNotFoundError(normalized) from error
        logger.info('Streaming file for user %s: %s', user_id, normalized)
        return stream

    def download_folder_zip(
        self,
        user_id: UserId,
        relative_path: str = '',
    ) -> Iterator[bytes]:
        """Stream a directory as a zip archive.

        Existence is checked eagerly; the archive itself is built lazily
        while the returned iterator is consumed, one object at a time.
        Entry names are object keys relative to the directory. Closing
        the iterator early releases the object being read.

        Args:
            user_id: Owner of the directory.
            relative_path: Directory path ('' for the whole user root).

        Returns:
            Iterator over the zip file bytes.

        Raises:
            ResourceNotFoundError: If the directory does not exist.
        """
        directory = as_directory(
            self._resolver.normalize(user_id, relative_path),
        )
        prefix = self._resolver.to_key(user_id, directory)
        if directory and not self._prefix_exists(prefix):
            raise ResourceNotFoundError(directory)

        logger.info('Streaming zip archive for user %s: %s', user_id, prefix)
        return stream_zip(
            self._archive_members(prefix),
            chunk_size=self._chunk_size,
        )

    def archive_name(self, user_id: UserId, relative_path: str) -> str:
        """Suggest a download file name for a directory archive.

        Example: 'docs/reports/' -> 'reports.zip', '' -> 'root.zip'

        Args:
            user_id: Owner of the directory.
            relative_path: Directory path.

        Returns:
            Archive file name.
        """
        directory = self._resolver.normalize(user_id, relative_path)
        name = directory.rstrip(_PATH_SEPARATOR).rpartition(_PATH_SEPARATOR)[2]
        return f'{name or _ROOT_ARCHIVE_NAME}.zip'

    def search(self, user_id: UserId, query: str) -> list[ResourceDescriptor]:
        """Find resources whose key contains the query (case-insensitive).

        What part of the key is tested is decided by the search predicate.

        Args:
            user_id: Owner of the resources.
            query: Substring to look for.

        Returns:
            Matching descriptors in key order; empty for an empty query.
        """
        if not query:
            return []

        root = self._resolver.user_root(user_id)
        logger.debug('Searching %s for %r', root, query)

        matches = []
        for entry in self._storage.list_objects(root, recursive=True):
            relative_path = entry.key[len(root):]
            if not relative_path:
                continue
            if self._search_predicate.matches(entry, relative_path, query):
                matches.append(self._describe_entry(user_id, entry))
        return matches

    def _describe_path(
        self,
        user_id: UserId,
        normalized: str,
    ) -> ResourceDescriptor:
        if not normalized:
            return ResourceDescriptor.for_directory('')

        if normalized.endswith(_PATH_SEPARATOR):
            prefix = self._resolver.to_key(user_id, normalized)
            if self._prefix_exists(prefix):
                return ResourceDescriptor.for_directory(normalized)
            raise ResourceNotFoundError(normalized)

        key = self._resolver.to_key(user_id, normalized)
        try:
            size = self._storage.stat_object(key)
        except ResourceNotFoundError:
            logger.debug('No object at %s, probing as directory', key)
        else:
            return ResourceDescriptor.for_file(normalized, size)

        if self._prefix_exists(key + _PATH_SEPARATOR):
            return ResourceDescriptor.for_directory(normalized)
        raise ResourceNotFoundError(normalized)

    def _describe_entry(
        self,
        user_id: UserId,
        entry: ObjectEntry,
    ) -> ResourceDescriptor:
        relative_path = self._resolver.to_relative(user_id, entry.key)
        if entry.is_directory:
            return ResourceDescriptor.for_directory(relative_path)
        return ResourceDescriptor.for_file(relative_path, entry.size or 0)

    def _prefix_exists(self, prefix: str) -> bool:
        listing = self._storage.list_objects(prefix, recursive=False, limit=1)
        return next(iter(listing), None) is not None

    def _ensure_absent(self, user_id: UserId, relative_path: str) -> None:
        """Refuse upload targets that exist as a file or a directory."""
        self._ensure_no_file(user_id, relative_path)
        self._ensure_no_directory(user_id, relative_path)

    def _ensure_no_directory(self, user_id: UserId, relative_path: str) -> None:
        prefix = self._resolver.to_key(user_id, as_directory(relative_path))
        if self._prefix_exists(prefix):
            logger.warning('Directory already exists: %s', prefix)
            raise ResourceAlreadyExistsError(relative_path)

    def _ensure_no_file(self, user_id: UserId, relative_path: str) -> None:
        key = self._resolver.to_key(user_id, relative_path)
        try:
            self._storage.stat_object(key)
        except ResourceNotFoundError:
            return
        logger.warning('Resource already exists: %s', key)
        raise ResourceAlreadyExistsError(relative_path)

    def _ensure_parent_markers(
        self,
        user_id: UserId,
        relative_path: str,
    ) -> None:
        """Write markers for every ancestor so no directory stays implicit.

        All ancestors are checked before the first marker is written.

        Raises:
            ResourceAlreadyExistsError: If an ancestor name is a file.
        """
        ancestors = parent_directories(relative_path)
        for ancestor in ancestors:
            self._ensure_no_file(user_id, ancestor.rstrip(_PATH_SEPARATOR))
        for ancestor in ancestors:
            self._storage.put_marker(self._resolver.to_key(user_id, ancestor))

    def _list_keys(self, prefix: str) -> list[str]:
        return [
            entry.key
            for entry in self._storage.list_objects(prefix, recursive=True)
        ]

    def _delete_directory(self, user_id: UserId, directory: str) -> None:
        prefix = self._resolver.to_key(user_id, directory)
        keys = self._list_keys(prefix)
        logger.info(
            'Deleting directory for user %s: %s (%d objects)',
            user_id,
            directory,
            len(keys),
        )

        for deleted, key in enumerate(keys):
            try:
                self._storage.delete_object(key)
            except FileStorageError:
                logger.exception(
                    'Directory delete aborted after %d of %d objects: %s',
                    deleted,
                    len(keys),
                    prefix,
                )
                raise

    def _move_file(
        self,
        user_id: UserId,
        source: str,
        destination: str,
    ) -> None:
        source_key = self._resolver.to_key(user_id, source)
        destination_key = self._resolver.to_key(user_id, destination)
        logger.info(
            'Moving file for user %s: %s -> %s',
            user_id,
            source,
            destination,
        )

        self._ensure_parent_markers(user_id, destination)
        try:
            self._storage.copy_object(source_key, destination_key)
        except ResourceNotFoundError as error:
            raise ResourceNotFoundError(source) from error
        self._storage.delete_object(source_key)

    def _move_directory(
        self,
        user_id: UserId,
        source: str,
        destination: str,
    ) -> None:
        source_prefix = self._resolver.to_key(user_id, source)
        destination_prefix = self._resolver.to_key(user_id, destination)
        keys = self._list_keys(source_prefix)
        logger.info(
            'Moving directory for user %s: %s -> %s (%d objects)',
            user_id,
            source,
            destination,
            len(keys),
        )

        # Legacy directories may have no marker of their own
        self._ensure_parent_markers(user_id, destination)
        self._storage.put_marker(destination_prefix)

        for moved, key in enumerate(keys):
            target = destination_prefix + key[len(source_prefix):]
            try:
                self._storage.copy_object(key, target)
                self._storage.delete_object(key)
            except ResourceNotFoundError as error:
                logger.exception('Object vanished during directory move: %s', key)
                raise ResourceNotFoundError(
                    self._resolver.to_relative(user_id, key),
                ) from error
            except FileStorageError:
                logger.exception(
                    'Directory move aborted after %d of %d objects: %s -> %s',
                    moved,
                    len(keys),
                    source_prefix,
                    destination_prefix,
                )
                raise

        logger.info('Moved %d objects from %s', len(keys), source_prefix)

    def _archive_members(self, prefix: str) -> Iterator[ArchiveMember]:
        for entry in self._storage.list_objects(prefix, recursive=True):
            if entry.is_directory:
                continue
            yield ArchiveMember(
                name=entry.key[len(prefix):],
                size=entry.size or 0,
                open=functools.partial(
                    self._storage.open_object,
                    entry.key,
                    chunk_size=self._chunk_size,
                ),
            )
