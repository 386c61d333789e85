"""Tests for metadata utilities."""

from io import BytesIO

from django.core.files.base import ContentFile

from skydrive.apps.files.infrastructure.metadata import (
    detect_mime_type,
    get_content_size,
    parent_directories,
)


class _Pipe:
    def read(self, size=-1):
        return b''


def test_detect_mime_type():
    """Test MIME type detection from filename."""
    assert detect_mime_type('test.pdf') == 'application/pdf'
    assert detect_mime_type('test.txt') == 'text/plain'
    assert detect_mime_type('docs/test.jpg') == 'image/jpeg'
    assert detect_mime_type('test.png') == 'image/png'


def test_detect_mime_type_unknown():
    """Test MIME type detection for unknown extension."""
    assert detect_mime_type('test.unknown') == 'application/octet-stream'
    assert detect_mime_type('README') == 'application/octet-stream'


def test_get_content_size_from_attribute():
    """Test Django files report their own size."""
    assert get_content_size(ContentFile(b'content')) == 7


def test_get_content_size_seekable():
    """Test remaining bytes are measured without consuming the stream."""
    file_obj = BytesIO(b'0123456789')
    file_obj.seek(4)

    assert get_content_size(file_obj) == 6
    assert file_obj.tell() == 4


def test_get_content_size_unknown():
    """Test streams without seek support have no size."""
    assert get_content_size(_Pipe()) is None


def test_parent_directories():
    """Test ancestors are listed from the outermost."""
    assert parent_directories('docs/reports/q1.pdf') == [
        'docs/',
        'docs/reports/',
    ]
    assert parent_directories('docs/reports/') == ['docs/']
    assert parent_directories('file.txt') == []
