"""Django storage configuration for the S3-compatible object store.

This module configures django-storages to work with:
- MinIO for local development
- Any S3-compatible service in production

User files live in a single bucket; each user owns one key prefix.
"""

from typing import Any, Final

from skydrive.settings.components import config

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'skydrive.apps.files.infrastructure.storage.FileStorage',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='skydrive',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            'file_overwrite': False,  # Prevent accidental overwrites
            'default_acl': None,  # Inherit bucket ACL
        },
    },
}

# Root prefix of every user's keys, `{user_id}` is substituted
SKYDRIVE_USER_ROOT_TEMPLATE = config(
    'SKYDRIVE_USER_ROOT_TEMPLATE',
    default='user-{user_id}-files/',
)

# Read size for downloads and zip archives
SKYDRIVE_STREAM_CHUNK_SIZE = config(
    'SKYDRIVE_STREAM_CHUNK_SIZE',
    cast=int,
    default=8192,
)

# Whether search results include directory markers
SKYDRIVE_SEARCH_INCLUDE_DIRECTORIES = config(
    'SKYDRIVE_SEARCH_INCLUDE_DIRECTORIES',
    cast=bool,
    default=False,
)

# Whether search matches the full object key (root prefix included)
# instead of the path relative to the user root
SKYDRIVE_SEARCH_MATCH_FULL_KEY = config(
    'SKYDRIVE_SEARCH_MATCH_FULL_KEY',
    cast=bool,
    default=True,
)
