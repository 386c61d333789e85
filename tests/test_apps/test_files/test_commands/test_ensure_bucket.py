"""Tests for ensure_bucket management command."""

from io import StringIO
from typing import Final

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from skydrive.apps.files.exceptions import StoreError
from skydrive.apps.files.infrastructure.storage import FileStorage

_TEST_BUCKET: Final = 'skydrive-test'


@pytest.fixture
def use_bucket(settings, mock_s3):
    """Point default storage at a bucket inside the mocked S3.

    Returns:
        Callable(bucket_name) switching STORAGES to that bucket.
    """
    def _use_bucket(bucket_name):
        settings.STORAGES = {
            'default': {
                'BACKEND': (
                    'skydrive.apps.files.infrastructure.storage.FileStorage'
                ),
                'OPTIONS': {
                    'bucket_name': bucket_name,
                    'access_key': 'testing',
                    'secret_key': 'testing',
                    'region_name': 'us-east-1',
                },
            },
        }
    return _use_bucket


class TestEnsureBucketCommand:
    """Tests for ensure_bucket management command."""

    def test_existing_bucket(self, use_bucket):
        """Test an existing bucket is left alone."""
        use_bucket(_TEST_BUCKET)
        out = StringIO()

        call_command('ensure_bucket', stdout=out)

        assert f'Bucket {_TEST_BUCKET} already exists' in out.getvalue()

    def test_creates_missing_bucket(self, use_bucket, mock_s3):
        """Test a missing bucket is created."""
        use_bucket('new-bucket')
        out = StringIO()

        call_command('ensure_bucket', stdout=out)

        assert 'Created bucket new-bucket' in out.getvalue()
        bucket_names = [bucket.name for bucket in mock_s3.buckets.all()]
        assert 'new-bucket' in bucket_names

    def test_dry_run(self, use_bucket, mock_s3):
        """Test dry run does not create anything."""
        use_bucket('new-bucket')
        out = StringIO()

        call_command('ensure_bucket', '--dry-run', stdout=out)

        assert 'Would create bucket new-bucket' in out.getvalue()
        bucket_names = [bucket.name for bucket in mock_s3.buckets.all()]
        assert 'new-bucket' not in bucket_names

    def test_store_failure(self, use_bucket, monkeypatch):
        """Test store failures surface as CommandError."""
        use_bucket(_TEST_BUCKET)

        def failing_ensure(self, *, dry_run=False):
            raise StoreError('head_bucket', self.bucket_name)

        monkeypatch.setattr(FileStorage, 'ensure_bucket', failing_ensure)

        with pytest.raises(CommandError, match='Cannot ensure bucket'):
            call_command('ensure_bucket', stdout=StringIO())
