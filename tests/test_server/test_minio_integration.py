"""Integration tests for MinIO S3 storage.

These tests verify that the storage core works against a real MinIO
server when running in Docker Compose. Each test works under a random
user id, so runs do not interfere with each other.
"""
import os
import uuid
import zipfile
from io import BytesIO
from typing import Final

import pytest

from skydrive.apps.files.exceptions import ResourceNotFoundError
from skydrive.apps.files.infrastructure.storage import FileStorage
from skydrive.apps.files.logic.path_resolver import PathResolver
from skydrive.apps.files.logic.resource_operations import (
    ResourceManager,
    SearchPredicate,
)

_TEST_BUCKET: Final = 'skydrive-integration'
_TEST_FILE_CONTENT: Final = b'Hello from MinIO integration test!'


@pytest.fixture
def minio_storage() -> FileStorage:
    """Create storage backend for MinIO with the test bucket.

    Returns:
        FileStorage pointed at MinIO.
    """
    storage = FileStorage(
        bucket_name=_TEST_BUCKET,
        endpoint_url=os.getenv('MINIO_ENDPOINT', 'http://minio:9000'),
        access_key=os.getenv('MINIO_ROOT_USER', 'minioadmin'),
        secret_key=os.getenv('MINIO_ROOT_PASSWORD', 'minioadmin'),
        region_name='us-east-1',
    )
    storage.ensure_bucket()
    return storage


@pytest.fixture
def user_id() -> str:
    """Random user id isolating one test run.

    Returns:
        Hex string usable as a key segment.
    """
    return uuid.uuid4().hex


@pytest.fixture
def minio_manager(minio_storage: FileStorage, user_id: str):
    """Resource manager on MinIO; cleans the user root afterwards.

    Args:
        minio_storage: MinIO storage backend.
        user_id: Random user id.

    Yields:
        ResourceManager instance.
    """
    manager = ResourceManager(
        storage=minio_storage,
        resolver=PathResolver('user-{user_id}-files/'),
        search_predicate=SearchPredicate(),
    )
    yield manager
    root = manager.resolver.user_root(user_id)
    for entry in list(minio_storage.list_objects(root)):
        minio_storage.delete_object(entry.key)


@pytest.mark.integration
def test_ensure_bucket_is_idempotent(minio_storage: FileStorage) -> None:
    """Test the bucket exists after the fixture created it."""
    assert minio_storage.ensure_bucket() is False


@pytest.mark.integration
def test_upload_and_download(
    minio_manager: ResourceManager,
    user_id: str,
) -> None:
    """Test uploaded content streams back unchanged.

    Args:
        minio_manager: Resource manager on MinIO.
        user_id: Random user id.
    """
    descriptor = minio_manager.upload_file(
        user_id,
        'docs',
        'hello.txt',
        BytesIO(_TEST_FILE_CONTENT),
    )
    assert descriptor.size == len(_TEST_FILE_CONTENT)

    with minio_manager.download_resource(user_id, 'docs/hello.txt') as stream:
        assert stream.read() == _TEST_FILE_CONTENT


@pytest.mark.integration
def test_directory_lifecycle(
    minio_manager: ResourceManager,
    user_id: str,
) -> None:
    """Test create, list, move, zip and delete of a directory.

    Args:
        minio_manager: Resource manager on MinIO.
        user_id: Random user id.
    """
    minio_manager.create_directory(user_id, 'src')
    minio_manager.upload_file(user_id, 'src', 'a.txt', BytesIO(b'a'))
    minio_manager.upload_file(user_id, 'src/sub', 'b.txt', BytesIO(b'b'))

    names = [entry.name for entry in minio_manager.list_directory(user_id, 'src')]
    assert names == ['a.txt', 'sub']

    minio_manager.move_resource(user_id, 'src', 'dst')
    with pytest.raises(ResourceNotFoundError):
        minio_manager.get_resource_info(user_id, 'src')

    archive_bytes = b''.join(minio_manager.download_folder_zip(user_id, 'dst'))
    archive = zipfile.ZipFile(BytesIO(archive_bytes))
    assert sorted(archive.namelist()) == ['a.txt', 'sub/b.txt']

    minio_manager.delete_resource(user_id, 'dst')
    assert minio_manager.list_directory(user_id) == []
