"""Settings entry point.

Settings are split into components and composed with django-split-settings.
``DJANGO_ENV`` selects the environment overlay (development or production).
"""

from os import environ

from split_settings.tools import include, optional

_ENV = environ.setdefault('DJANGO_ENV', 'development')

_base_settings = (
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/drive.py',
    # Select the right env:
    'environments/{0}.py'.format(_ENV),
    # Optionally override some settings:
    optional('environments/local.py'),
)

include(*_base_settings)
