"""Shared fixtures for files app tests."""

from io import BytesIO
from typing import Final

import boto3
import pytest
from moto import mock_aws

from skydrive.apps.files.infrastructure.storage import FileStorage
from skydrive.apps.files.logic.path_resolver import PathResolver
from skydrive.apps.files.logic.resource_operations import (
    ResourceManager,
    SearchPredicate,
)

TEST_BUCKET: Final = 'skydrive-test'
USER_ID: Final = 1
OTHER_USER_ID: Final = 2


@pytest.fixture
def mock_s3():
    """Mock S3 service with the test bucket.

    Yields:
        boto3 S3 resource with the test bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket=TEST_BUCKET)
        yield conn


@pytest.fixture
def bucket(mock_s3):
    """Test bucket resource for direct assertions.

    Returns:
        boto3 Bucket.
    """
    return mock_s3.Bucket(TEST_BUCKET)


@pytest.fixture
def storage(mock_s3):
    """FileStorage pointed at the mocked bucket.

    Returns:
        FileStorage instance.
    """
    return FileStorage(
        bucket_name=TEST_BUCKET,
        access_key='testing',
        secret_key='testing',
        region_name='us-east-1',
    )


@pytest.fixture
def resolver():
    """Resolver with the default root template.

    Returns:
        PathResolver instance.
    """
    return PathResolver('user-{user_id}-files/')


@pytest.fixture
def manager(storage, resolver):
    """Resource manager with a tiny chunk size to exercise streaming.

    Returns:
        ResourceManager instance.
    """
    return ResourceManager(
        storage=storage,
        resolver=resolver,
        search_predicate=SearchPredicate(),
        chunk_size=4,
    )


@pytest.fixture
def upload(manager):
    """Upload helper taking bytes instead of a file object.

    Returns:
        Callable(directory, file_name, data, user_id=USER_ID).
    """
    def _upload(directory, file_name, data, user_id=USER_ID):
        return manager.upload_file(
            user_id,
            directory,
            file_name,
            BytesIO(data),
            size=len(data),
        )
    return _upload


@pytest.fixture
def bucket_keys(bucket):
    """Helper listing keys currently stored in the bucket.

    Returns:
        Callable(prefix='') returning sorted keys.
    """
    def _bucket_keys(prefix=''):
        return sorted(
            obj.key for obj in bucket.objects.filter(Prefix=prefix)
        )
    return _bucket_keys
