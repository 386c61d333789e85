"""Tests for the streaming zip writer."""

import zipfile
from io import BytesIO

from skydrive.apps.files.infrastructure.archive import ArchiveMember, stream_zip


def _member(name, data, opened=None):
    def _open():
        source = BytesIO(data)
        if opened is not None:
            opened.append(source)
        return source
    return ArchiveMember(name=name, size=len(data), open=_open)


def _read_zip(chunks):
    return zipfile.ZipFile(BytesIO(b''.join(chunks)))


def test_stream_zip_contents():
    """Test every member is archived under its name."""
    archive = _read_zip(stream_zip([
        _member('a.txt', b'alpha'),
        _member('sub/b.txt', b'beta'),
    ]))

    assert archive.testzip() is None
    assert archive.namelist() == ['a.txt', 'sub/b.txt']
    assert archive.read('sub/b.txt') == b'beta'


def test_stream_zip_deflated_by_default():
    """Test entries are compressed unless asked otherwise."""
    archive = _read_zip(stream_zip([_member('a.txt', b'a' * 1000)]))

    info = archive.getinfo('a.txt')
    assert info.compress_type == zipfile.ZIP_DEFLATED
    assert info.file_size == 1000
    assert info.compress_size < 1000


def test_stream_zip_stored():
    """Test entries can be stored without compression."""
    chunks = stream_zip(
        [_member('a.bin', b'\x00\x01\x02')],
        compression=zipfile.ZIP_STORED,
    )

    archive = _read_zip(chunks)

    assert archive.getinfo('a.bin').compress_type == zipfile.ZIP_STORED
    assert archive.read('a.bin') == b'\x00\x01\x02'


def test_stream_zip_empty():
    """Test no members still produce a valid archive."""
    archive = _read_zip(stream_zip([]))

    assert archive.namelist() == []


def test_stream_zip_yields_incrementally():
    """Test output is produced in several pieces."""
    chunks = list(stream_zip(
        [_member('a.bin', bytes(range(256)) * 64)],
        chunk_size=1024,
        compression=zipfile.ZIP_STORED,
    ))

    assert len(chunks) > 2
    assert _read_zip(chunks).read('a.bin') == bytes(range(256)) * 64


def test_stream_zip_opens_members_lazily():
    """Test a member is opened only when it is written."""
    opened = []
    chunks = stream_zip([
        _member('a.txt', b'a' * 100, opened),
        _member('b.txt', b'b' * 100, opened),
    ], chunk_size=10)

    assert opened == []
    next(chunks)
    assert len(opened) == 1

    list(chunks)
    assert len(opened) == 2
    assert all(source.closed for source in opened)


def test_stream_zip_close_releases_member():
    """Test closing the generator closes the member being copied."""
    opened = []
    chunks = stream_zip([
        _member('a.txt', b'a' * 100, opened),
        _member('b.txt', b'b' * 100, opened),
    ], chunk_size=10)

    next(chunks)
    chunks.close()

    assert len(opened) == 1
    assert opened[0].closed
