"""Value types returned by the storage core.

Nothing here is persisted: descriptors are computed from object keys on
every request.
"""

import enum
from dataclasses import dataclass
from typing import Any, Final, final

_PATH_SEPARATOR: Final = '/'


@final
class ResourceKind(enum.Enum):
    """Kind of resource a descriptor points at."""

    FILE = 'FILE'
    DIRECTORY = 'DIRECTORY'


@final
@dataclass(frozen=True, slots=True)
class ObjectEntry:
    """One row of an object store listing.

    ``is_directory`` is set for directory markers (keys ending with ``/``)
    and for common prefixes reported by delimiter listings.
    """

    key: str
    size: int | None
    is_directory: bool


@final
@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """File or virtual directory as seen by the caller.

    ``path`` is the parent directory relative to the user's root: empty for
    root-level items, otherwise ending with ``/``. ``name`` never contains
    a slash. ``size`` is ``None`` for directories.
    """

    path: str
    name: str
    size: int | None
    kind: ResourceKind

    @classmethod
    def for_file(cls, relative_path: str, size: int) -> 'ResourceDescriptor':
        """Build a FILE descriptor from a relative path.

        Args:
            relative_path: Path relative to the user root (docs/a.txt).
            size: Object size in bytes.

        Returns:
            Descriptor with path 'docs/' and name 'a.txt'.
        """
        parent, name = split_relative_path(relative_path)
        return cls(path=parent, name=name, size=size, kind=ResourceKind.FILE)

    @classmethod
    def for_directory(cls, relative_path: str) -> 'ResourceDescriptor':
        """Build a DIRECTORY descriptor from a relative path.

        Args:
            relative_path: Directory path, with or without trailing slash.

        Returns:
            Descriptor with an unset size.
        """
        parent, name = split_relative_path(
            relative_path.rstrip(_PATH_SEPARATOR),
        )
        return cls(
            path=parent,
            name=name,
            size=None,
            kind=ResourceKind.DIRECTORY,
        )

    @property
    def is_directory(self) -> bool:
        """Check whether the descriptor points at a directory."""
        return self.kind is ResourceKind.DIRECTORY

    @property
    def relative_path(self) -> str:
        """Canonical relative path (directories end with a slash)."""
        full_path = self.path + self.name
        if self.is_directory and full_path:
            return full_path + _PATH_SEPARATOR
        return full_path

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping for serialization by the HTTP layer."""
        return {
            'path': self.path,
            'name': self.name,
            'size': self.size,
            'type': self.kind.value,
        }


def split_relative_path(relative_path: str) -> tuple[str, str]:
    """Split a relative path into parent directory and leaf name.

    Example: 'docs/reports/q1.pdf' -> ('docs/reports/', 'q1.pdf')

    Args:
        relative_path: Path without a trailing slash.

    Returns:
        Tuple of parent (empty or ending with '/') and name.
    """
    parent, separator, name = relative_path.rpartition(_PATH_SEPARATOR)
    return parent + separator, name
