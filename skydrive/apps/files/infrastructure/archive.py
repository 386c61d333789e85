"""Streaming zip archive writer.

The archive is produced incrementally: zipfile writes into an in-memory
sink that is drained after every chunk, so memory stays bounded by one
read chunk plus compressor state regardless of the archive size. Entries
use data descriptors because the sink cannot seek back to patch headers.
"""

import logging
import zipfile
from collections.abc import Callable, Iterable, Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import BinaryIO, Final, final

logger = logging.getLogger(__name__)

_DEFAULT_CHUNK_SIZE: Final = 8192


@final
@dataclass(frozen=True, slots=True)
class ArchiveMember:
    """One file to place into the archive.

    ``open`` is called only when the member is written, so at most one
    member stream is open at a time.
    """

    name: str
    size: int
    open: Callable[[], AbstractContextManager[BinaryIO]]


@final
class _ChunkSink:
    """Write-only file object collecting bytes until drained."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        """Nothing to flush, data is kept until drained."""

    def drain(self) -> bytes:
        data = b''.join(self._chunks)
        self._chunks.clear()
        return data


def stream_zip(
    members: Iterable[ArchiveMember],
    chunk_size: int = _DEFAULT_CHUNK_SIZE,
    compression: int = zipfile.ZIP_DEFLATED,
) -> Iterator[bytes]:
    """Build a zip archive lazily, yielding bytes as they are produced.

    Members are consumed one at a time. If the generator is closed early
    (the client went away), the member stream being copied is closed by
    its context manager.

    Args:
        members: Files to archive, in archive order.
        chunk_size: Bytes read from a member per step.
        compression: zipfile compression constant.

    Yields:
        Consecutive pieces of the zip file.
    """
    sink = _ChunkSink()
    with zipfile.ZipFile(sink, mode='w', compression=compression) as archive:
        for member in members:
            logger.debug('Adding archive entry: %s', member.name)
            entry = zipfile.ZipInfo(member.name)
            entry.compress_type = compression
            entry.file_size = member.size
            with member.open() as source, archive.open(entry, mode='w') as dest:
                for chunk in iter(lambda: source.read(chunk_size), b''):
                    dest.write(chunk)
                    data = sink.drain()
                    if data:
                        yield data
            data = sink.drain()
            if data:
                yield data
    # Central directory is written on close
    data = sink.drain()
    if data:
        yield data
