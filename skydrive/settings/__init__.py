"""Main settings file for the project.

Settings are split into components, read in order. Values come from
environment variables or ``config/.env`` via python-decouple.
"""

from split_settings.tools import include

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
)
