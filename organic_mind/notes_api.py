from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import Field
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .auth import get_current_user
from .crud import CamelModel, check_path_id, get_or_404, replace_row, scoped
from .db import async_session
from .models import Note, User
from .utils import isoformat_utc, now_utc

router = APIRouter(prefix='/api/notes', tags=['notes'])


class NoteIn(CamelModel):
    id: Optional[str] = None
    title: str = ''
    content: str = ''
    color: str = Field(default='#FFD433', pattern=r'^#[0-9A-Fa-f]{6}$')
    user_id: Optional[str] = None


def note_to_dict(n: Note) -> dict:
    return {
        'id': n.id,
        'title': n.title,
        'content': n.content,
        'color': n.color,
        'createdAt': isoformat_utc(n.created_at),
        'updatedAt': isoformat_utc(n.updated_at),
        'userId': n.user_id,
    }


@router.get('')
async def list_notes(current_user: Optional[User] = Depends(get_current_user)):
    """Sticky-wall notes, newest first."""
    async with async_session() as sess:
        q = scoped(select(Note), Note, current_user).order_by(Note.created_at.desc())
        rows = (await sess.exec(q)).all()
    return [note_to_dict(n) for n in rows]


@router.get('/{note_id}')
async def get_note(note_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        n = await get_or_404(sess, Note, note_id, current_user)
    return note_to_dict(n)


@router.post('', status_code=201)
async def create_note(body: NoteIn, response: Response, current_user: Optional[User] = Depends(get_current_user)):
    owner_id = current_user.id if current_user is not None else body.user_id
    async with async_session() as sess:
        n = Note(title=body.title, content=body.content, color=body.color, user_id=owner_id)
        sess.add(n)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="note references an unknown user")
        await sess.refresh(n)
    response.headers['Location'] = f"/api/notes/{n.id}"
    return note_to_dict(n)


@router.put('/{note_id}', status_code=204)
async def update_note(note_id: str, body: NoteIn, current_user: Optional[User] = Depends(get_current_user)):
    check_path_id(note_id, body.id)
    async with async_session() as sess:
        await get_or_404(sess, Note, note_id, current_user, write=True)
        values = {'title': body.title, 'content': body.content, 'color': body.color, 'updated_at': now_utc()}
        await replace_row(sess, Note, note_id, values)
    return Response(status_code=204)


@router.delete('/{note_id}', status_code=204)
async def delete_note(note_id: str, current_user: Optional[User] = Depends(get_current_user)):
    async with async_session() as sess:
        await get_or_404(sess, Note, note_id, current_user, write=True)
        await sess.exec(sqlalchemy_delete(Note).where(Note.id == note_id))
        await sess.commit()
    return Response(status_code=204)
