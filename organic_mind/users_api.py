"""Registration, login, external-identity linking and account management."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from . import defaults
from .auth import (
    AccountState,
    account_state,
    create_access_token,
    get_current_user,
    hash_password,
    user_projection,
    verify_password,
)
from .crud import CamelModel
from .db import async_session
from .lists_api import list_to_dict
from .models import Note, Tag, TaskItem, TaskList, User
from .tags_api import tag_to_dict
from .utils import now_utc

router = APIRouter(prefix='/api/users', tags=['users'])
logger = logging.getLogger(__name__)


class RegisterIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255, pattern=r'^[^@\s]+@[^@\s]+$')
    password: str = Field(min_length=1)


class LoginIn(CamelModel):
    email: str
    password: str


class GoogleAuthIn(CamelModel):
    email: str = Field(min_length=3, max_length=255, pattern=r'^[^@\s]+@[^@\s]+$')
    name: str = Field(min_length=1, max_length=100)
    google_id: str = Field(min_length=1, max_length=255)
    profile_picture_url: Optional[str] = None


class UpdateUserIn(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255, pattern=r'^[^@\s]+@[^@\s]+$')


class ChangePasswordIn(CamelModel):
    current_password: Optional[str] = None
    new_password: str = Field(min_length=1)


class ResetPasswordIn(CamelModel):
    email: str
    new_password: str = Field(min_length=1)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def _user_by_email(sess, email: str) -> Optional[User]:
    q = await sess.exec(select(User).where(User.email == _normalize_email(email)))
    return q.first()


async def _seed_after_create(user_id: str) -> None:
    """Seed the new user's defaults. The user row is already committed, so a
    failure here is logged and left for POST /{id}/seed-defaults to retry."""
    try:
        await defaults.seed_user_defaults(user_id)
    except Exception:
        logger.exception('seeding defaults failed for new user %s; retry via seed-defaults', user_id)


def _self_only(user_id: str, current_user: Optional[User]) -> None:
    if current_user is not None and current_user.id != user_id:
        raise HTTPException(status_code=403, detail="forbidden")


@router.post('/register')
async def register(body: RegisterIn):
    email = _normalize_email(body.email)
    async with async_session() as sess:
        if await _user_by_email(sess, email) is not None:
            raise HTTPException(status_code=400, detail="User with this email already exists")
        u = User(
            name=body.name,
            email=email,
            password_hash=hash_password(body.password),
            has_password=True,
            last_login_at=now_utc(),
        )
        sess.add(u)
        try:
            await sess.commit()
        except IntegrityError:
            # lost a race with another registration for the same email
            await sess.rollback()
            raise HTTPException(status_code=400, detail="User with this email already exists")
        await sess.refresh(u)
    logger.info('registered user %s', u.id)
    await _seed_after_create(u.id)
    return user_projection(u)


async def _authenticate(email: str, password: str) -> User:
    async with async_session() as sess:
        u = await _user_by_email(sess, email)
        if u is None or not u.has_password or not verify_password(password, u.password_hash):
            raise HTTPException(status_code=401, detail="Invalid email or password")
        u.last_login_at = now_utc()
        sess.add(u)
        await sess.commit()
        await sess.refresh(u)
    return u


@router.post('/login')
async def login(body: LoginIn):
    u = await _authenticate(body.email, body.password)
    return user_projection(u)


@router.post('/token')
async def token(body: LoginIn):
    """Issue a bearer token; sent back as ``Authorization: Bearer ...``."""
    u = await _authenticate(body.email, body.password)
    return {'access_token': create_access_token({'sub': u.id}), 'token_type': 'bearer'}


@router.post('/google-auth')
async def google_auth(body: GoogleAuthIn):
    """Sign in with an external identity, linking or creating the account.

    * known external id: plain login
    * unseen external id, email of an existing user: link the identity
    * neither known: create an external-only user with default data
    """
    email = _normalize_email(body.email)
    created = False
    async with async_session() as sess:
        by_gid = (await sess.exec(select(User).where(User.google_id == body.google_id))).first()
        by_email = await _user_by_email(sess, email)
        if by_gid is not None and by_email is not None and by_gid.id != by_email.id:
            raise HTTPException(status_code=400, detail="This Google account is already linked to another user")
        if by_gid is not None:
            u = by_gid
        elif by_email is not None:
            u = by_email
            if u.google_id and u.google_id != body.google_id:
                raise HTTPException(status_code=400, detail="This email is already linked to a different Google account")
            before = account_state(u)
            u.google_id = body.google_id
            u.has_google_login = True
            if body.profile_picture_url:
                u.profile_picture_url = body.profile_picture_url
            logger.info('linked google identity to user %s (%s -> %s)', u.id, before, AccountState.LINKED if u.has_password else AccountState.EXTERNAL_ONLY)
        else:
            u = User(
                name=body.name,
                email=email,
                google_id=body.google_id,
                has_google_login=True,
                profile_picture_url=body.profile_picture_url,
                is_email_verified=True,
            )
            created = True
        u.last_login_at = now_utc()
        sess.add(u)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="email or Google account already in use")
        await sess.refresh(u)
    if created:
        logger.info('registered external user %s', u.id)
        await _seed_after_create(u.id)
    return user_projection(u)


@router.post('/reset-password')
async def reset_password(body: ResetPasswordIn):
    """Set a new password by email. The response never reveals whether the email exists."""
    async with async_session() as sess:
        u = await _user_by_email(sess, body.email)
        if u is not None:
            u.password_hash = hash_password(body.new_password)
            u.has_password = True
            sess.add(u)
            await sess.commit()
            logger.info('password reset for user %s', u.id)
    return {'message': 'If the email exists, the password has been reset'}


@router.get('/{user_id}')
async def get_user(user_id: str, current_user: Optional[User] = Depends(get_current_user)):
    _self_only(user_id, current_user)
    async with async_session() as sess:
        u = await sess.get(User, user_id)
    if u is None:
        raise HTTPException(status_code=404, detail="user not found")
    return user_projection(u)


@router.put('/{user_id}')
async def update_user(user_id: str, body: UpdateUserIn, current_user: Optional[User] = Depends(get_current_user)):
    """Update name and/or email. Credentials are not touched here."""
    if body.id is not None and body.id != user_id:
        raise HTTPException(status_code=400, detail="id in body does not match id in path")
    _self_only(user_id, current_user)
    async with async_session() as sess:
        u = await sess.get(User, user_id)
        if u is None:
            raise HTTPException(status_code=404, detail="user not found")
        if body.name:
            u.name = body.name
        if body.email:
            email = _normalize_email(body.email)
            other = await _user_by_email(sess, email)
            if other is not None and other.id != user_id:
                raise HTTPException(status_code=400, detail="Email is already taken")
            u.email = email
        sess.add(u)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=400, detail="Email is already taken")
        await sess.refresh(u)
    return user_projection(u)


@router.post('/{user_id}/change-password')
async def change_password(user_id: str, body: ChangePasswordIn, current_user: Optional[User] = Depends(get_current_user)):
    """Change (or, for an external-only account, add) the password."""
    _self_only(user_id, current_user)
    async with async_session() as sess:
        u = await sess.get(User, user_id)
        if u is None:
            raise HTTPException(status_code=404, detail="user not found")
        if u.has_password and not verify_password(body.current_password or '', u.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        u.password_hash = hash_password(body.new_password)
        u.has_password = True
        sess.add(u)
        await sess.commit()
    return {'message': 'Password changed successfully'}


@router.delete('/{user_id}')
async def delete_user(user_id: str, current_user: Optional[User] = Depends(get_current_user)):
    """Delete the account and everything it owns."""
    _self_only(user_id, current_user)
    async with async_session() as sess:
        u = await sess.get(User, user_id)
        if u is None:
            raise HTTPException(status_code=404, detail="user not found")
        # tasks first: they reference lists
        for model in (TaskItem, Note, TaskList, Tag):
            await sess.exec(sqlalchemy_delete(model).where(model.user_id == user_id))
        await sess.delete(u)
        await sess.commit()
    logger.info('deleted user %s and owned data', user_id)
    return {'message': 'Account deleted successfully'}


@router.post('/{user_id}/seed-defaults')
async def seed_defaults(user_id: str, current_user: Optional[User] = Depends(get_current_user)):
    _self_only(user_id, current_user)
    async with async_session() as sess:
        if await sess.get(User, user_id) is None:
            raise HTTPException(status_code=404, detail="user not found")
    created = await defaults.seed_user_defaults(user_id)
    return {'created': created}


@router.post('/{user_id}/reset-data')
async def reset_data(user_id: str, current_user: Optional[User] = Depends(get_current_user)):
    """Wipe the user's data back to the default lists and tags."""
    _self_only(user_id, current_user)
    async with async_session() as sess:
        if await sess.get(User, user_id) is None:
            raise HTTPException(status_code=404, detail="user not found")
    state = await defaults.reset_user_data(user_id)
    return {
        'lists': [list_to_dict(l, with_tasks=False) for l in state['lists']],
        'tags': [tag_to_dict(t) for t in state['tags']],
        'tasks': [],
        'notes': [],
        'failed': state['failed'],
    }
