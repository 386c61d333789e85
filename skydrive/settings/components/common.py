"""Core Django settings.

The project has no HTTP surface and no database models; Django provides
the settings machinery, the storage registry and management commands.
"""

from typing import Final

from skydrive.settings.components import config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='skydrive-insecure-dev-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

INSTALLED_APPS: Final = (
    'skydrive.apps.files',
)

DATABASES: Final[dict[str, dict[str, str]]] = {}

USE_TZ = True
TIME_ZONE = 'UTC'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
