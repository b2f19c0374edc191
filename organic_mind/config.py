"""Runtime configuration for the Organic Mind task server.

Settings are read from environment variables so they can be toggled in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./organic_mind.db')

# SECRET_KEY signs bearer tokens. The fallback exists only so tests and local
# runs work without extra setup; the server refuses to start with it unless
# DEV_MODE is enabled.
SECRET_KEY = os.getenv('SECRET_KEY', 'CHANGE_ME_IN_ENV_FOR_TESTS')
try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24)))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24

# IANA zone used to turn due timestamps into calendar days when the caller
# doesn't pass an explicit tz.
DEFAULT_TIMEZONE = os.getenv('DEFAULT_TIMEZONE', 'UTC')

# What happens to a list's tasks when the list is deleted:
#   'delete' removes them, 'detach' keeps them with list_id cleared.
LIST_DELETE_POLICY = os.getenv('LIST_DELETE_POLICY', 'delete').lower()
if LIST_DELETE_POLICY not in ('delete', 'detach'):
    LIST_DELETE_POLICY = 'delete'

# Seed the global template lists/tags on first startup.
SEED_TEMPLATES = _trueish(os.getenv('SEED_TEMPLATES', '1'))

# Origins allowed to call the API from a browser (the Next.js web client).
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv('CORS_ORIGINS', 'http://localhost:3000,https://localhost:3000').split(',')
    if o.strip()
]

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Requests slower than this are logged by the timing middleware.
try:
    SLOW_REQUEST_MS = int(os.getenv('SLOW_REQUEST_MS', '500'))
except ValueError:
    SLOW_REQUEST_MS = 500

# When true, the app is considered to be running in development mode.
DEV_MODE = _trueish(os.getenv('DEV_MODE', '0'))

# Optional local overrides: define variables in organic_mind/local_config.py
# to override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    pass
