"""Translation between user-visible relative paths and object keys.

Relative paths are what callers send: documents/report.pdf
Object keys include the user's root prefix: user-42-files/documents/report.pdf

The root prefix is always derived from the authenticated user id. A path
that already starts with a root-shaped prefix is accepted only when that
prefix is exactly the caller's own root.
"""

import re
from typing import Final, final

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from skydrive.apps.files.exceptions import AccessDeniedError, InvalidPathError

_PATH_SEPARATOR: Final = '/'
_USER_ID_PLACEHOLDER: Final = '{user_id}'
_PARENT_SEGMENT: Final = '..'
_CURRENT_SEGMENT: Final = '.'

UserId = int | str


@final
class PathResolver:
    """Validates relative paths and scopes them to a user's root prefix.

    Stateless apart from the root template, so one instance can be shared
    between users and threads.
    """

    def __init__(self, user_root_template: str | None = None) -> None:
        """Initialize resolver with a root prefix template.

        Args:
            user_root_template: Template containing '{user_id}' and ending
                with '/'. Defaults to SKYDRIVE_USER_ROOT_TEMPLATE.

        Raises:
            ImproperlyConfigured: If the template is unusable.
        """
        template = user_root_template or settings.SKYDRIVE_USER_ROOT_TEMPLATE
        if template.count(_USER_ID_PLACEHOLDER) != 1:
            raise ImproperlyConfigured(
                f'User root template must contain {_USER_ID_PLACEHOLDER} '
                f'exactly once: {template!r}',
            )
        if not template.endswith(_PATH_SEPARATOR):
            raise ImproperlyConfigured(
                f'User root template must end with /: {template!r}',
            )
        self._template = template

        head, _, tail = template.partition(_USER_ID_PLACEHOLDER)
        self._root_pattern = re.compile(
            '{head}(?P<user_id>[^/]+){tail}'.format(
                head=re.escape(head),
                tail=re.escape(tail),
            ),
        )

    def user_root(self, user_id: UserId) -> str:
        """Get the root prefix owned by a user.

        Args:
            user_id: Identifier of the authenticated user.

        Returns:
            Root prefix, e.g. 'user-42-files/'.

        Raises:
            ValueError: If the identifier cannot form a single key segment.
        """
        user_segment = str(user_id)
        if not user_segment or _PATH_SEPARATOR in user_segment:
            raise ValueError(f'Invalid user id: {user_id!r}')
        return self._template.replace(_USER_ID_PLACEHOLDER, user_segment)

    def normalize(self, user_id: UserId, relative_path: str) -> str:
        """Validate a caller path and strip the caller's own root if present.

        Args:
            user_id: Identifier of the authenticated user.
            relative_path: Caller-controlled path.

        Returns:
            Relative path ('' for the root directory).

        Raises:
            InvalidPathError: If the path is absolute, traverses upwards,
                or is otherwise malformed.
            AccessDeniedError: If the path names another user's root.
        """
        if '\x00' in relative_path:
            raise InvalidPathError(relative_path, 'null byte in path')
        if relative_path.startswith(_PATH_SEPARATOR):
            raise InvalidPathError(
                relative_path,
                'absolute paths are not allowed',
            )

        path = relative_path
        root_match = self._root_pattern.match(path)
        if root_match is not None:
            if root_match.group(0) != self.user_root(user_id):
                raise AccessDeniedError(relative_path)
            path = path[root_match.end():]

        self._check_segments(relative_path, path)
        return path

    def resolve(self, user_id: UserId, relative_path: str) -> str:
        """Convert a relative path into an object key.

        Args:
            user_id: Identifier of the authenticated user.
            relative_path: Caller-controlled path (docs/file.pdf).

        Returns:
            Object key (user-42-files/docs/file.pdf).

        Raises:
            InvalidPathError: If the path is malformed.
            AccessDeniedError: If the key would leave the caller's root.
        """
        return self.to_key(user_id, self.normalize(user_id, relative_path))

    def resolve_directory(self, user_id: UserId, relative_path: str) -> str:
        """Convert a directory path into a key prefix ending with '/'.

        The empty path resolves to the user root itself.

        Args:
            user_id: Identifier of the authenticated user.
            relative_path: Directory path, with or without trailing slash.

        Returns:
            Key prefix of the directory.
        """
        return self.resolve(user_id, as_directory(relative_path))

    def to_key(self, user_id: UserId, normalized_path: str) -> str:
        """Build the object key of a path already returned by normalize().

        Args:
            user_id: Identifier of the authenticated user.
            normalized_path: Relative path without a root prefix.

        Returns:
            Object key under the caller's root.

        Raises:
            AccessDeniedError: If the key would leave the caller's root.
        """
        key = self.user_root(user_id) + normalized_path
        self.check_ownership(user_id, key)
        return key

    def to_relative(self, user_id: UserId, key: str) -> str:
        """Convert an object key back into a caller-visible relative path.

        Args:
            user_id: Identifier of the authenticated user.
            key: Object key.

        Returns:
            Path relative to the user root.

        Raises:
            AccessDeniedError: If the key is not under the caller's root.
        """
        root = self.user_root(user_id)
        self.check_ownership(user_id, key)
        return key[len(root):]

    def check_ownership(self, user_id: UserId, key: str) -> None:
        """Ensure an object key lives under the caller's root.

        Args:
            user_id: Identifier of the authenticated user.
            key: Object key about to be accessed.

        Raises:
            AccessDeniedError: If the key belongs elsewhere.
        """
        if not key.startswith(self.user_root(user_id)):
            raise AccessDeniedError(key)

    def join_paths(self, parent: str, name: str) -> str:
        """Join a directory path and a name into a relative path.

        Args:
            parent: Directory path ('' for root, 'docs' or 'docs/').
            name: Name to append (may contain sub-directories).

        Returns:
            Joined relative path (docs/file.pdf).
        """
        return as_directory(parent) + name

    def _check_segments(self, original: str, path: str) -> None:
        body = path.removesuffix(_PATH_SEPARATOR)
        if not body:
            if path:
                # Only possible after stripping an own root: 'user-1-files//'
                raise InvalidPathError(original, 'empty path segment')
            return
        for segment in body.split(_PATH_SEPARATOR):
            if segment == _PARENT_SEGMENT:
                raise InvalidPathError(original, 'parent directory reference')
            if segment == _CURRENT_SEGMENT:
                raise InvalidPathError(original, 'current directory reference')
            if not segment:
                raise InvalidPathError(original, 'empty path segment')


def as_directory(relative_path: str) -> str:
    """Normalize a relative directory path to end with '/'.

    Example: 'docs' -> 'docs/', '' -> ''

    Args:
        relative_path: Directory path.

    Returns:
        Empty string for the root, otherwise the path with one trailing '/'.
    """
    if not relative_path or relative_path.endswith(_PATH_SEPARATOR):
        return relative_path
    return relative_path + _PATH_SEPARATOR
