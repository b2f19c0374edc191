"""Async API client with a local mirror of the user's data."""

import asyncio
import logging
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
from dateutil import parser as date_parser

from organic_mind import buckets
from organic_mind.utils import now_utc, parse_due

from .config import Config
from .local_store import LocalStore

logger = logging.getLogger(__name__)


def as_task(d: Dict[str, Any]) -> SimpleNamespace:
    """Turn a task document into the attribute shape the bucketing engine reads."""
    due, has_time = parse_due(d.get('dueDate'))
    created = d.get('createdAt')
    return SimpleNamespace(
        id=d['id'],
        title=d.get('title') or '',
        description=d.get('description'),
        completed=bool(d.get('completed')),
        created_at=date_parser.isoparse(created) if created else None,
        due_date=due,
        due_has_time=has_time,
        list_id=d.get('listId'),
        doc=d,
    )


class TaskClient:
    """Client for the task API.

    Writes go straight to the server and then invalidate the affected
    mirror collections; reads serve the mirror and re-fetch whatever is
    stale. The mirror is never patched optimistically.
    """

    def __init__(
        self,
        base_url: str = None,
        store: Optional[LocalStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tz: Optional[str] = None,
    ):
        if base_url is None or tz is None:
            cfg = Config()
            base_url = base_url or cfg.server_url
            tz = tz or cfg.timezone
        self.base_url = base_url
        self.tz = tz
        self.store = store or LocalStore()
        self.user: Optional[Dict[str, Any]] = None
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        resp = await self.http.request(method, path, **kwargs)
        resp.raise_for_status()
        return resp

    # -- auth -------------------------------------------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate and scope every later call to this user."""
        creds = {'email': email, 'password': password}
        tok = (await self._request('POST', '/api/users/token', json=creds)).json()
        self.http.headers['Authorization'] = f"Bearer {tok['access_token']}"
        self.user = (await self._request('POST', '/api/users/login', json=creds)).json()
        self.store.clear_all()
        return self.user

    async def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        await self._request('POST', '/api/users/register', json={'name': name, 'email': email, 'password': password})
        return await self.login(email, password)

    # -- mirrored reads ---------------------------------------------------

    async def _collection(self, kind: str) -> List[Dict[str, Any]]:
        rows = self.store.load(kind)
        if rows is None:
            rows = (await self._request('GET', f'/api/{kind}')).json()
            self.store.store(kind, rows)
        return rows

    async def tasks(self) -> List[Dict[str, Any]]:
        return await self._collection('tasks')

    async def lists(self) -> List[Dict[str, Any]]:
        return await self._collection('lists')

    async def tags(self) -> List[Dict[str, Any]]:
        return await self._collection('tags')

    async def notes(self) -> List[Dict[str, Any]]:
        return await self._collection('notes')

    # -- writes -----------------------------------------------------------

    async def create_task(self, **fields) -> Dict[str, Any]:
        resp = await self._request('POST', '/api/tasks', json=fields)
        self.store.invalidate('tasks', 'lists')
        return resp.json()

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> None:
        await self._request('PUT', f'/api/tasks/{task_id}', json={**fields, 'id': task_id})
        self.store.invalidate('tasks', 'lists')

    async def toggle_task(self, task_id: str) -> None:
        await self._request('PATCH', f'/api/tasks/{task_id}/toggle')
        self.store.invalidate('tasks', 'lists')

    async def delete_task(self, task_id: str) -> None:
        await self._request('DELETE', f'/api/tasks/{task_id}')
        self.store.invalidate('tasks', 'lists')

    async def create_list(self, name: str, color: str = '#6366f1') -> Dict[str, Any]:
        resp = await self._request('POST', '/api/lists', json={'name': name, 'color': color})
        self.store.invalidate('lists')
        return resp.json()

    async def delete_list(self, list_id: str) -> None:
        await self._request('DELETE', f'/api/lists/{list_id}')
        self.store.invalidate('lists', 'tasks')

    async def create_tag(self, name: str) -> Dict[str, Any]:
        resp = await self._request('POST', '/api/tags', json={'name': name})
        self.store.invalidate('tags')
        return resp.json()

    async def create_note(self, title: str = '', content: str = '', color: str = '#FFD433') -> Dict[str, Any]:
        resp = await self._request('POST', '/api/notes', json={'title': title, 'content': content, 'color': color})
        self.store.invalidate('notes')
        return resp.json()

    # -- local views ------------------------------------------------------

    async def view(self, name: str, now=None, **kwargs) -> List[Dict[str, Any]]:
        """Evaluate a named filter against the mirror (same rules as the server)."""
        tasks = [as_task(d) for d in await self.tasks()]
        templates = {l['id']: l.get('templateId') for l in await self.lists() if l.get('templateId')}
        rows = buckets.filter_tasks(
            tasks, name, now or now_utc(), tz=self.tz, list_templates=templates, **kwargs
        )
        return [t.doc for t in rows]

    async def bucket_view(self, now=None, show_completed: bool = False) -> Dict[str, List[Dict[str, Any]]]:
        tasks = [as_task(d) for d in await self.tasks()]
        out = buckets.bucketize(tasks, now or now_utc(), tz=self.tz, show_completed=show_completed)
        return {b.value: [t.doc for t in rows] for b, rows in out.items()}

    # -- reset ------------------------------------------------------------

    async def _delete_one(self, kind: str, row_id: str) -> None:
        await self._request('DELETE', f'/api/{kind}/{row_id}')

    async def _delete_many(self, kind: str, ids: List[str]) -> int:
        results = await asyncio.gather(*(self._delete_one(kind, i) for i in ids), return_exceptions=True)
        failed = 0
        for row_id, res in zip(ids, results):
            if isinstance(res, BaseException):
                failed += 1
                logger.warning('reset: delete %s/%s failed: %r', kind, row_id, res)
        return failed

    async def reset_all_data(self) -> Dict[str, Any]:
        """Delete the caller's tasks and notes plus their custom lists and tags.

        Signed-in callers only touch their own rows and keep their own default
        lists and tags; global templates are neither deleted nor reported.
        Anonymous callers reset everything and keep the templates. Deletes are
        fired concurrently and individual failures are ignored. Afterwards the
        mirror holds only the default lists and tags, whatever the
        server-side outcome was.
        """
        owner = self.user['id'] if self.user else None

        def mine(row):
            return self.user is None or row.get('userId') == owner

        self.store.invalidate()
        tasks = [t for t in await self.tasks() if mine(t)]
        notes = [n for n in await self.notes() if mine(n)]
        lists = [l for l in await self.lists() if mine(l)]
        tags = [t for t in await self.tags() if mine(t)]

        failed = sum(await asyncio.gather(
            self._delete_many('tasks', [t['id'] for t in tasks]),
            self._delete_many('notes', [n['id'] for n in notes]),
        ))
        failed += sum(await asyncio.gather(
            self._delete_many('lists', [l['id'] for l in lists if not l.get('isDefault')]),
            self._delete_many('tags', [t['id'] for t in tags if not t.get('isDefault')]),
        ))

        default_lists = [dict(l, tasks=[]) for l in lists if l.get('isDefault') and l.get('userId') == owner]
        default_tags = [t for t in tags if t.get('isDefault') and t.get('userId') == owner]
        self.store.store('tasks', [])
        self.store.store('notes', [])
        self.store.store('lists', default_lists)
        self.store.store('tags', default_tags)
        if failed:
            logger.warning('reset_all_data: %d deletes failed; local state reset anyway', failed)
        return {'lists': default_lists, 'tags': default_tags, 'tasks': [], 'notes': [], 'failed': failed}
