"""Helpers shared by the resource routers: owner scoping, lookups, replace."""
import logging
from typing import Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import or_
from sqlalchemy import update as sqlalchemy_update
from sqlmodel.ext.asyncio.session import AsyncSession

from .db import StaleUpdateError, row_exists
from .models import User

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (the web client) or snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def scoped(stmt, model, user: Optional[User]):
    """Restrict a select to rows the caller owns plus global rows.

    Anonymous callers see everything.
    """
    if user is None:
        return stmt
    return stmt.where(or_(model.user_id == user.id, model.user_id == None))  # noqa: E711


def check_read(row, user: Optional[User]) -> None:
    if user is not None and row.user_id is not None and row.user_id != user.id:
        raise HTTPException(status_code=403, detail="forbidden")


def check_write(row, user: Optional[User]) -> None:
    """Signed-in callers may only change their own rows; templates are read-only to them."""
    if user is not None and row.user_id != user.id:
        raise HTTPException(status_code=403, detail="forbidden")


async def get_or_404(sess: AsyncSession, model, row_id: str, user: Optional[User] = None, write: bool = False):
    row = await sess.get(model, row_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{model.__name__.lower()} not found")
    if write:
        check_write(row, user)
    else:
        check_read(row, user)
    return row


def check_path_id(path_id: str, body_id: Optional[str]) -> None:
    """A replace body must carry the id of the row it replaces."""
    if body_id is None:
        raise HTTPException(status_code=400, detail="id missing from body")
    if body_id != path_id:
        raise HTTPException(status_code=400, detail="id in body does not match id in path")


async def replace_row(sess: AsyncSession, model, row_id: str, values: dict) -> None:
    """Full-record replace of one row.

    Zero matched rows means either the row vanished (404) or the write lost
    a race with a concurrent writer; the latter raises StaleUpdateError.
    Commits on success.
    """
    res = await sess.exec(sqlalchemy_update(model).where(model.id == row_id).values(**values))
    if res.rowcount == 0:
        await sess.rollback()
        if not await row_exists(sess, model, row_id):
            raise HTTPException(status_code=404, detail=f"{model.__name__.lower()} not found")
        logger.warning('replace of %s %s matched no rows but the row exists', model.__name__, row_id)
        raise StaleUpdateError(f"{model.__name__} {row_id} was modified concurrently")
    await sess.commit()
