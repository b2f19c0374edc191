from datetime import datetime
import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from organic_client.client import TaskClient
from organic_client.local_store import LocalStore
from organic_mind.main import app

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def api(db, tmp_path):
    store = LocalStore(str(tmp_path / 'mirror.db'))
    async with TaskClient(base_url='http://test', store=store, transport=ASGITransport(app=app), tz='UTC') as c:
        await c.register('Client User', f"c-{uuid.uuid4().hex[:8]}@example.com", 'pw')
        yield c


async def test_local_store_freshness(tmp_path):
    store = LocalStore(str(tmp_path / 's.db'))
    assert store.load('tasks') is None
    store.store('tasks', [{'id': 'a', 'title': 'x'}])
    assert store.load('tasks') == [{'id': 'a', 'title': 'x'}]
    store.invalidate('tasks')
    assert store.load('tasks') is None
    assert store.counts()['tasks'] == 1


async def test_writes_invalidate_the_mirror(api):
    assert await api.tasks() == []
    assert api.store.is_fresh('tasks')
    t = await api.create_task(title='from client', dueDate='2024-06-12')
    assert not api.store.is_fresh('tasks')
    assert [x['id'] for x in await api.tasks()] == [t['id']]
    await api.toggle_task(t['id'])
    assert (await api.tasks())[0]['completed'] is True


async def test_local_views_match_server(api):
    await api.create_task(title='today', dueDate='2024-06-12T09:00:00')
    await api.create_task(title='overdue', dueDate='2024-06-11')
    await api.create_task(title='undated')
    now = datetime(2024, 6, 12, 12, 0)
    local = await api.view('today', now=now)
    remote = (await api.http.get('/api/tasks/filter/today', params={'now': now.isoformat()})).json()
    assert [t['id'] for t in local] == [t['id'] for t in remote]
    assert [t['title'] for t in local] == ['today']
    b = await api.bucket_view(now=now)
    assert [t['title'] for t in b['overdue']] == ['overdue']
    assert [t['title'] for t in b['later']] == ['undated']


async def test_errors_propagate(api):
    with pytest.raises(httpx.HTTPStatusError):
        await api.delete_task('does-not-exist')


async def test_reset_all_data(api):
    await api.create_task(title='a')
    await api.create_task(title='b')
    await api.create_list('Custom')
    await api.create_tag('mine')
    await api.create_note('n', 'c')
    state = await api.reset_all_data()
    assert state['failed'] == 0
    assert state['tasks'] == [] and state['notes'] == []
    assert len(state['lists']) == 3 and len(state['tags']) == 2
    assert {l['userId'] for l in state['lists']} == {api.user['id']}
    # the mirror is authoritative until invalidated
    assert await api.tasks() == []
    api.store.invalidate()
    assert await api.tasks() == []
    assert sorted(l['name'] for l in await api.lists() if l['userId'] == api.user['id']) == ['List 1', 'Personal', 'Work']


async def test_reset_leaves_global_rows_alone(api):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as anon:
        r = await anon.post('/api/tasks', json={'title': 'shared'})
        assert r.status_code == 201
        shared = r.json()
    await api.create_task(title='own')
    state = await api.reset_all_data()
    assert state['failed'] == 0
    assert [l['id'] for l in state['lists'] if l['userId'] is None] == []
    api.store.invalidate()
    assert [t['id'] for t in await api.tasks()] == [shared['id']]
    templates = [l for l in await api.lists() if l['userId'] is None]
    assert sorted(l['id'] for l in templates) == ['list1', 'personal', 'work']


async def test_reset_ignores_failed_deletes(api, monkeypatch):
    await api.create_task(title='a')

    async def failing_delete(kind, row_id):
        raise httpx.HTTPError('boom')

    monkeypatch.setattr(api, '_delete_one', failing_delete)
    state = await api.reset_all_data()
    assert state['failed'] == 1
    assert state['tasks'] == []
    assert await api.tasks() == []
