from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import Field
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .auth import get_current_user
from .crud import CamelModel, check_path_id, get_or_404, replace_row, scoped
from .db import async_session
from .models import Tag, User

router = APIRouter(prefix='/api/tags', tags=['tags'])


class TagIn(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=50)
    user_id: Optional[str] = None


def tag_to_dict(t: Tag) -> dict:
    return {
        'id': t.id,
        'name': t.name,
        'userId': t.user_id,
        'isDefault': t.is_default,
        'templateId': t.template_id,
    }


@router.get('')
async def list_tags(current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        rows = (await sess.exec(scoped(select(Tag), Tag, current_user))).all()
    return [tag_to_dict(t) for t in rows]


@router.get('/{tag_id}')
async def get_tag(tag_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        t = await get_or_404(sess, Tag, tag_id, current_user)
    return tag_to_dict(t)


@router.post('', status_code=201)
async def create_tag(body: TagIn, response: Response, current_user: Optional[User] = Depends(get_current_user)):
    owner_id = current_user.id if current_user is not None else body.user_id
    async with async_session() as sess:
        t = Tag(name=body.name, user_id=owner_id)
        sess.add(t)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="tag references an unknown user")
        await sess.refresh(t)
    response.headers['Location'] = f"/api/tags/{t.id}"
    return tag_to_dict(t)


@router.put('/{tag_id}', status_code=204)
async def update_tag(tag_id: str, body: TagIn, current_user: Optional[User] = Depends(get_current_user)):
    check_path_id(tag_id, body.id)
    async with async_session() as sess:
        await get_or_404(sess, Tag, tag_id, current_user, write=True)
        await replace_row(sess, Tag, tag_id, {'name': body.name})
    return Response(status_code=204)


@router.delete('/{tag_id}', status_code=204)
async def delete_tag(tag_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        await get_or_404(sess, Tag, tag_id, current_user, write=True)
        await sess.exec(sqlalchemy_delete(Tag).where(Tag.id == tag_id))
        await sess.commit()
    return Response(status_code=204)
