from datetime import date, datetime, time, timedelta
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import Field, field_validator
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import update as sqlalchemy_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from . import buckets
from .auth import get_current_user
from .crud import CamelModel, check_path_id, get_or_404, replace_row, scoped
from .db import async_session
from .models import TaskItem, TaskList, User
from .utils import format_due, isoformat_utc, parse_due, parse_now

router = APIRouter(prefix='/api/tasks', tags=['tasks'])
logger = logging.getLogger(__name__)

URGENT_PREFIX = '🔥 URGENT: '


class TaskIn(CamelModel):
    id: Optional[str] = None
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    completed: bool = False
    due_date: Optional[str] = None
    list_id: Optional[str] = None
    user_id: Optional[str] = None
    section: Optional[str] = None
    subtasks: Optional[int] = None

    @field_validator('title')
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('title must not be blank')
        return v


def task_to_dict(t: TaskItem) -> dict:
    return {
        'id': t.id,
        'title': t.title,
        'description': t.description,
        'completed': t.completed,
        'createdAt': isoformat_utc(t.created_at),
        'dueDate': format_due(t.due_date, t.due_has_time),
        'listId': t.list_id,
        'userId': t.user_id,
        'section': t.section,
        'subtasks': t.subtasks,
    }


class ViewParams:
    """Query parameters shared by every read-side view."""

    def __init__(
        self,
        show_completed: bool = Query(False, alias='showCompleted'),
        now: Optional[str] = Query(None),
        tz: Optional[str] = Query(None),
    ):
        self.show_completed = show_completed
        self.tz = tz
        try:
            self.now = parse_now(now)
        except (ValueError, OverflowError):
            raise HTTPException(status_code=400, detail=f"invalid now: {now!r}")

    @property
    def today(self) -> date:
        return buckets.calendar_day(self.now, self.tz)


def _parse_due_or_400(value):
    # always stored in config.DEFAULT_TIMEZONE; reads convert into ?tz
    try:
        return parse_due(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _parse_day_or_400(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid day: {value!r}")


async def _check_list(sess, list_id: Optional[str], owner_id: Optional[str]) -> None:
    """A task's list must exist and belong to the task's owner or be global."""
    if not list_id:
        return
    lst = await sess.get(TaskList, list_id)
    if lst is None:
        raise HTTPException(status_code=400, detail=f"list {list_id} does not exist")
    if lst.user_id is not None and lst.user_id != owner_id:
        raise HTTPException(status_code=400, detail="list belongs to another user")


async def _load_scope(user: Optional[User]) -> tuple[list[TaskItem], dict[str, str]]:
    """Tasks visible to the caller plus the list id -> template id map."""
    async with async_session() as sess:
        tasks = (await sess.exec(scoped(select(TaskItem), TaskItem, user))).all()
        q = scoped(select(TaskList).where(TaskList.template_id != None), TaskList, user)  # noqa: E711
        templates = {l.id: l.template_id for l in (await sess.exec(q)).all()}
    return list(tasks), templates


@router.get('')
async def list_tasks(current_user: Optional[User] = Depends(get_current_user)):
    tasks, _ = await _load_scope(current_user)
    return [task_to_dict(t) for t in tasks]


@router.get('/filter/{name}')
async def filter_tasks(
    name: str,
    list_id: Optional[str] = Query(None, alias='listId'),
    q: Optional[str] = Query(None),
    sort: str = Query('due'),
    view: ViewParams = Depends(),
    current_user: Optional[User] = Depends(get_current_user),
):
    tasks, templates = await _load_scope(current_user)
    rows = buckets.filter_tasks(
        tasks, name, view.now,
        tz=view.tz, show_completed=view.show_completed, list_id=list_id,
        query=q, sort=sort, list_templates=templates,
    )
    return [task_to_dict(t) for t in rows]


@router.get('/buckets')
async def task_buckets(
    sort: str = Query('due'),
    view: ViewParams = Depends(),
    current_user: Optional[User] = Depends(get_current_user),
):
    tasks, _ = await _load_scope(current_user)
    out = buckets.bucketize(tasks, view.now, tz=view.tz, show_completed=view.show_completed, sort=sort)
    return {b.value: [task_to_dict(t) for t in rows] for b, rows in out.items()}


@router.get('/upcoming/grouped')
async def upcoming_grouped(view: ViewParams = Depends(), current_user: Optional[User] = Depends(get_current_user)):
    tasks, _ = await _load_scope(current_user)
    groups = buckets.group_by_day(tasks, view.now, tz=view.tz, show_completed=view.show_completed)
    return [{'date': d.isoformat(), 'tasks': [task_to_dict(t) for t in rows]} for d, rows in groups]


@router.get('/week')
async def week(
    day: Optional[str] = Query(None),
    view: ViewParams = Depends(),
    current_user: Optional[User] = Depends(get_current_user),
):
    anchor = _parse_day_or_400(day) if day else view.today
    tasks, _ = await _load_scope(current_user)
    schedule = buckets.week_schedule(tasks, anchor, tz=view.tz)
    return [{'date': d.isoformat(), 'tasks': [task_to_dict(t) for t in rows]} for d, rows in schedule]


@router.get('/calendar/{day}')
async def tasks_on_day(day: str, view: ViewParams = Depends(), current_user: Optional[User] = Depends(get_current_user)):
    wanted = _parse_day_or_400(day)
    tasks, _ = await _load_scope(current_user)
    rows = buckets.tasks_on(tasks, wanted, tz=view.tz, show_completed=view.show_completed)
    return [task_to_dict(t) for t in rows]


@router.get('/stats')
async def stats(view: ViewParams = Depends(), current_user: Optional[User] = Depends(get_current_user)):
    tasks, _ = await _load_scope(current_user)
    w = buckets.workload(tasks, view.now, tz=view.tz)
    return {
        'pending': w['pending'],
        'overdue': w['overdue'],
        'dueToday': w['due_today'],
        'upcomingWeek': w['upcoming_week'],
        'completed': w['completed'],
    }


def _overdue_owned(tasks, view: ViewParams, user: Optional[User]) -> list[TaskItem]:
    rows = [t for t in tasks if buckets.classify(t, view.now, view.tz) is buckets.Bucket.OVERDUE]
    if user is not None:
        rows = [t for t in rows if t.user_id == user.id]
    return rows


@router.post('/reschedule-overdue')
async def reschedule_overdue(view: ViewParams = Depends(), current_user: Optional[User] = Depends(get_current_user)):
    """Move every incomplete overdue task to tomorrow (date-only)."""
    tasks, _ = await _load_scope(current_user)
    ids = [t.id for t in _overdue_owned(tasks, view, current_user)]
    if ids:
        tomorrow = datetime.combine(view.today + timedelta(days=1), time())
        async with async_session() as sess:
            await sess.exec(
                sqlalchemy_update(TaskItem).where(TaskItem.id.in_(ids)).values(due_date=tomorrow, due_has_time=False)
            )
            await sess.commit()
        logger.info('rescheduled %d overdue tasks to %s', len(ids), tomorrow.date())
    return {'updated': len(ids), 'ids': ids}


@router.post('/mark-overdue-urgent')
async def mark_overdue_urgent(view: ViewParams = Depends(), current_user: Optional[User] = Depends(get_current_user)):
    """Prefix overdue task descriptions with the urgent marker, at most once."""
    tasks, _ = await _load_scope(current_user)
    marked = []
    async with async_session() as sess:
        for t in _overdue_owned(tasks, view, current_user):
            desc = t.description or ''
            if desc.startswith(URGENT_PREFIX):
                continue
            await sess.exec(
                sqlalchemy_update(TaskItem).where(TaskItem.id == t.id).values(description=URGENT_PREFIX + desc)
            )
            marked.append(t.id)
        await sess.commit()
    return {'updated': len(marked), 'ids': marked}


@router.get('/{task_id}')
async def get_task(task_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        t = await get_or_404(sess, TaskItem, task_id, current_user)
    return task_to_dict(t)


@router.post('', status_code=201)
async def create_task(body: TaskIn, response: Response, current_user: Optional[User] = Depends(get_current_user)):
    due, has_time = _parse_due_or_400(body.due_date)
    owner_id = current_user.id if current_user is not None else body.user_id
    async with async_session() as sess:
        await _check_list(sess, body.list_id, owner_id)
        t = TaskItem(
            title=body.title,
            description=body.description,
            completed=body.completed,
            due_date=due,
            due_has_time=has_time,
            list_id=body.list_id or None,
            user_id=owner_id,
            section=body.section,
            subtasks=body.subtasks,
        )
        sess.add(t)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="task references an unknown user or list")
        await sess.refresh(t)
    response.headers['Location'] = f"/api/tasks/{t.id}"
    return task_to_dict(t)


@router.put('/{task_id}', status_code=204)
async def update_task(task_id: str, body: TaskIn, current_user: Optional[User] = Depends(get_current_user)):
    check_path_id(task_id, body.id)
    due, has_time = _parse_due_or_400(body.due_date)
    async with async_session() as sess:
        existing = await get_or_404(sess, TaskItem, task_id, current_user, write=True)
        owner_id = existing.user_id
        if current_user is None and body.user_id is not None:
            owner_id = body.user_id
        await _check_list(sess, body.list_id, owner_id)
        values = {
            'title': body.title,
            'description': body.description,
            'completed': body.completed,
            'due_date': due,
            'due_has_time': has_time,
            'list_id': body.list_id or None,
            'user_id': owner_id,
            'section': body.section,
            'subtasks': body.subtasks,
        }
        try:
            await replace_row(sess, TaskItem, task_id, values)
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="task references an unknown user or list")
    return Response(status_code=204)


@router.patch('/{task_id}/toggle', status_code=204)
async def toggle_task(task_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        t = await get_or_404(sess, TaskItem, task_id, current_user, write=True)
        t.completed = not t.completed
        sess.add(t)
        await sess.commit()
    return Response(status_code=204)


@router.delete('/{task_id}', status_code=204)
async def delete_task(task_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        await get_or_404(sess, TaskItem, task_id, current_user, write=True)
        await sess.exec(sqlalchemy_delete(TaskItem).where(TaskItem.id == task_id))
        await sess.commit()
    return Response(status_code=204)
