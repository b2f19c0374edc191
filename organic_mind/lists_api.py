import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import Field
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import update as sqlalchemy_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import select

from . import config
from .auth import get_current_user
from .crud import CamelModel, check_path_id, get_or_404, replace_row, scoped
from .db import async_session
from .models import TaskItem, TaskList, User
from .tasks_api import task_to_dict

router = APIRouter(prefix='/api/lists', tags=['lists'])
logger = logging.getLogger(__name__)

COLOR_PATTERN = r'^#[0-9A-Fa-f]{6}$'


class ListIn(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default='#6366f1', pattern=COLOR_PATTERN)
    user_id: Optional[str] = None


def list_to_dict(l: TaskList, with_tasks: bool = True) -> dict:
    out = {
        'id': l.id,
        'name': l.name,
        'color': l.color,
        'userId': l.user_id,
        'isDefault': l.is_default,
        'templateId': l.template_id,
    }
    if with_tasks:
        out['tasks'] = [task_to_dict(t) for t in l.tasks]
    return out


@router.get('')
async def list_lists(current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        q = scoped(select(TaskList).options(selectinload(TaskList.tasks)), TaskList, current_user)
        rows = (await sess.exec(q)).all()
    return [list_to_dict(l) for l in rows]


@router.get('/{list_id}')
async def get_list(list_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        q = select(TaskList).options(selectinload(TaskList.tasks)).where(TaskList.id == list_id)
        l = (await sess.exec(q)).first()
        if l is None:
            raise HTTPException(status_code=404, detail="tasklist not found")
        if current_user is not None and l.user_id not in (None, current_user.id):
            raise HTTPException(status_code=403, detail="forbidden")
    return list_to_dict(l)


@router.post('', status_code=201)
async def create_list(body: ListIn, response: Response, current_user: Optional[User] = Depends(get_current_user)):
    owner_id = current_user.id if current_user is not None else body.user_id
    async with async_session() as sess:
        l = TaskList(name=body.name, color=body.color, user_id=owner_id)
        sess.add(l)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="list references an unknown user")
        await sess.refresh(l)
    response.headers['Location'] = f"/api/lists/{l.id}"
    return list_to_dict(l, with_tasks=False) | {'tasks': []}


@router.put('/{list_id}', status_code=204)
async def update_list(list_id: str, body: ListIn, current_user: Optional[User] = Depends(get_current_user)):
    check_path_id(list_id, body.id)
    async with async_session() as sess:
        await get_or_404(sess, TaskList, list_id, current_user, write=True)
        await replace_row(sess, TaskList, list_id, {'name': body.name, 'color': body.color})
    return Response(status_code=204)


@router.delete('/{list_id}', status_code=204)
async def delete_list(list_id: str, current_user: Optional[User] = Depends(get_current_user)):
    """Delete a list; its tasks are removed or detached per LIST_DELETE_POLICY."""
    async with async_session() as sess:
        await get_or_404(sess, TaskList, list_id, current_user, write=True)
        if config.LIST_DELETE_POLICY == 'detach':
            res = await sess.exec(sqlalchemy_update(TaskItem).where(TaskItem.list_id == list_id).values(list_id=None))
        else:
            res = await sess.exec(sqlalchemy_delete(TaskItem).where(TaskItem.list_id == list_id))
        await sess.exec(sqlalchemy_delete(TaskList).where(TaskList.id == list_id))
        await sess.commit()
    logger.info('deleted list %s (%s %d tasks)', list_id, config.LIST_DELETE_POLICY, res.rowcount)
    return Response(status_code=204)
