"""Metadata helpers for uploaded content and relative paths."""

import mimetypes
import os
from typing import BinaryIO, Final

_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'
_PATH_SEPARATOR: Final = '/'


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from file name.

    Uses Python's built-in mimetypes module to guess MIME type
    from filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def get_content_size(file_obj: BinaryIO) -> int | None:
    """Get the number of bytes left to read from a file object.

    Does not consume the stream. Non-seekable streams (sockets, pipes)
    have no known size.

    Args:
        file_obj: File-like object positioned at the start of the upload.

    Returns:
        Remaining size in bytes, or None when it cannot be determined.
    """
    size = getattr(file_obj, 'size', None)
    if isinstance(size, int):
        return size

    seekable = getattr(file_obj, 'seekable', None)
    if seekable is None or not seekable():
        return None

    position = file_obj.tell()
    end = file_obj.seek(0, os.SEEK_END)
    file_obj.seek(position)
    return end - position


def parent_directories(relative_path: str) -> list[str]:
    """List every ancestor directory of a relative path.

    Example: 'docs/reports/q1.pdf' -> ['docs/', 'docs/reports/']

    Args:
        relative_path: File or directory path relative to a user root.

    Returns:
        Ancestor directories from the outermost, each ending with '/'.
    """
    parts = relative_path.rstrip(_PATH_SEPARATOR).split(_PATH_SEPARATOR)
    return [
        _PATH_SEPARATOR.join(parts[:depth]) + _PATH_SEPARATOR
        for depth in range(1, len(parts))
    ]
