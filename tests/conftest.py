import os
import pathlib
import sys
import tempfile
import warnings

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Point the app at a throwaway database and a test-only secret before any
# organic_mind module is imported; config is read at import time.
_TEST_DB = pathlib.Path(tempfile.gettempdir()) / f"organic_mind_test_{os.getpid()}.db"
os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{_TEST_DB}"
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')
# due values are stored as wall-clock time in this zone
os.environ['DEFAULT_TIMEZONE'] = 'UTC'

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except ImportError:
    pass

# Reduce SQLAlchemy logger verbosity during tests
import logging as _logging
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from organic_mind.db import drop_db, init_db
from organic_mind.main import app


@pytest_asyncio.fixture
async def db():
    """Fresh schema (plus global templates) for every test."""
    await drop_db()
    await init_db()
    yield


@pytest_asyncio.fixture
async def client(db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def register(client, email: str, password: str = 'secret-pw', name: str = 'Test User') -> dict:
    r = await client.post('/api/users/register', json={'name': name, 'email': email, 'password': password})
    assert r.status_code == 200, r.text
    return r.json()


async def auth_headers(client, email: str, password: str = 'secret-pw') -> dict:
    r = await client.post('/api/users/token', json={'email': email, 'password': password})
    assert r.status_code == 200, r.text
    return {'Authorization': f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def register_user():
    return register


@pytest.fixture
def login_headers():
    return auth_headers


def pytest_sessionfinish(session, exitstatus):
    try:
        _TEST_DB.unlink()
    except OSError:
        pass
