from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import event, func
from sqlalchemy.pool import NullPool

import logging

from . import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL


class StaleUpdateError(RuntimeError):
    """A full-record replace matched no row although the row still exists."""


# NullPool: every session gets a fresh connection, which keeps aiosqlite
# happy when tests run each case on its own event loop.
engine = create_async_engine(DATABASE_URL, echo=False, future=True, poolclass=NullPool)


if DATABASE_URL.startswith('sqlite'):
    @event.listens_for(engine.sync_engine, 'connect')
    def _sqlite_pragmas(dbapi_con, con_record):
        cur = dbapi_con.cursor()
        try:
            cur.execute('PRAGMA foreign_keys=ON')
            # concurrent writers (bulk reset) wait instead of failing fast
            cur.execute('PRAGMA busy_timeout=5000')
        finally:
            cur.close()


async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def row_exists(sess: AsyncSession, model, row_id: str) -> bool:
    q = await sess.exec(select(func.count()).select_from(model).where(model.id == row_id))
    return bool(q.one())


async def init_db():
    # import models so every table is registered on SQLModel.metadata
    from . import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    if config.SEED_TEMPLATES:
        from .defaults import seed_templates
        await seed_templates()


async def drop_db():
    """Drop every table. Used by tests and the reset script."""
    from . import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
