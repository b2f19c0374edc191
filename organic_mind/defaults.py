"""Default lists/tags: global templates, per-user clones and full data reset."""
import asyncio
import logging

from sqlalchemy import update as sqlalchemy_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .db import async_session
from .models import Note, Tag, TaskItem, TaskList

logger = logging.getLogger(__name__)

# (template id, name, color)
DEFAULT_LISTS = (
    ('personal', 'Personal', '#FF6B6B'),
    ('work', 'Work', '#4ECDC4'),
    ('list1', 'List 1', '#FFD166'),
)

# (template id, name)
DEFAULT_TAGS = (
    ('tag1', 'Tag 1'),
    ('tag2', 'Tag 2'),
)


def user_default_id(user_id: str, template_id: str) -> str:
    """Id of a user's clone of a template row, e.g. '<uid>-work'."""
    return f"{user_id}-{template_id}"


def default_list_ids(user_id: str | None) -> list[str]:
    if user_id is None:
        return [tid for tid, _, _ in DEFAULT_LISTS]
    return [user_default_id(user_id, tid) for tid, _, _ in DEFAULT_LISTS]


def default_tag_ids(user_id: str | None) -> list[str]:
    if user_id is None:
        return [tid for tid, _ in DEFAULT_TAGS]
    return [user_default_id(user_id, tid) for tid, _ in DEFAULT_TAGS]


def _default_rows(user_id: str | None) -> list:
    rows: list = []
    for tid, name, color in DEFAULT_LISTS:
        row_id = tid if user_id is None else user_default_id(user_id, tid)
        rows.append(TaskList(id=row_id, name=name, color=color, user_id=user_id, is_default=True, template_id=tid))
    for tid, name in DEFAULT_TAGS:
        row_id = tid if user_id is None else user_default_id(user_id, tid)
        rows.append(Tag(id=row_id, name=name, user_id=user_id, is_default=True, template_id=tid))
    return rows


async def _find_missing(sess, rows: list) -> list:
    return [row for row in rows if await sess.get(type(row), row.id) is None]


async def _insert_one(row) -> bool:
    async with async_session() as sess:
        if await sess.get(type(row), row.id) is not None:
            return False
        sess.add(row)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            return False
    return True


async def _insert_missing(user_id: str | None) -> list[str]:
    """Insert whichever default rows for ``user_id`` don't exist yet.

    Existing rows are left untouched, so calling this twice never
    duplicates. Returns the ids that were created.
    """
    async with async_session() as sess:
        missing = await _find_missing(sess, _default_rows(user_id))
        if not missing:
            return []
        sess.add_all(missing)
        try:
            await sess.commit()
            return [row.id for row in missing]
        except IntegrityError:
            await sess.rollback()
    # another request seeded some of the rows between our check and commit;
    # insert the rest one at a time
    logger.info('default rows for owner=%s were seeded concurrently; retrying per row', user_id)
    created: list[str] = []
    for row in _default_rows(user_id):
        if await _insert_one(row):
            created.append(row.id)
    return created


async def seed_templates() -> list[str]:
    """Ensure the global (ownerless) template lists and tags exist."""
    created = await _insert_missing(None)
    if created:
        logger.info('seeded global templates: %s', ', '.join(created))
    return created


async def seed_user_defaults(user_id: str) -> list[str]:
    """Create the user's three default lists and two default tags.

    Idempotent: safe to retry after a failed registration flow.
    """
    created = await _insert_missing(user_id)
    logger.info('seed_user_defaults user=%s created=%d', user_id, len(created))
    return created


async def load_defaults(user_id: str) -> tuple[list[TaskList], list[Tag]]:
    async with async_session() as sess:
        ql = await sess.exec(select(TaskList).where(TaskList.id.in_(default_list_ids(user_id))))
        qt = await sess.exec(select(Tag).where(Tag.id.in_(default_tag_ids(user_id))))
        lists = sorted(ql.all(), key=lambda l: default_list_ids(user_id).index(l.id))
        tags = sorted(qt.all(), key=lambda t: default_tag_ids(user_id).index(t.id))
    return lists, tags


async def _delete_row(model, row_id: str) -> bool:
    """Delete one row in its own session. Returns False if it was already gone."""
    async with async_session() as sess:
        row = await sess.get(model, row_id)
        if row is None:
            return False
        if model is TaskList:
            await sess.exec(sqlalchemy_update(TaskItem).where(TaskItem.list_id == row_id).values(list_id=None))
        await sess.delete(row)
        await sess.commit()
    return True


async def _delete_all(model, ids: list[str]) -> int:
    """Fan out one delete per row; return how many failed."""
    if not ids:
        return 0
    results = await asyncio.gather(*(_delete_row(model, i) for i in ids), return_exceptions=True)
    failed = 0
    for row_id, res in zip(ids, results):
        if isinstance(res, BaseException):
            failed += 1
            logger.warning('reset: failed to delete %s %s: %r', model.__name__, row_id, res)
    return failed


async def reset_user_data(user_id: str) -> dict:
    """Delete everything a user owns except the default lists and tags.

    Deletes run concurrently and individual failures are only logged. The
    returned state is always the defaults-only view (3 lists, 2 tags, no
    tasks or notes); callers must not infer per-row outcomes from it.
    """
    async with async_session() as sess:
        task_ids = (await sess.exec(select(TaskItem.id).where(TaskItem.user_id == user_id))).all()
        note_ids = (await sess.exec(select(Note.id).where(Note.user_id == user_id))).all()
        list_ids = (await sess.exec(
            select(TaskList.id).where(TaskList.user_id == user_id).where(TaskList.is_default == False)  # noqa: E712
        )).all()
        tag_ids = (await sess.exec(
            select(Tag.id).where(Tag.user_id == user_id).where(Tag.is_default == False)  # noqa: E712
        )).all()

    # tasks before lists so list deletes don't trip over rows still pointing at them
    failed = sum(await asyncio.gather(_delete_all(TaskItem, list(task_ids)), _delete_all(Note, list(note_ids))))
    failed += sum(await asyncio.gather(_delete_all(TaskList, list(list_ids)), _delete_all(Tag, list(tag_ids))))
    if failed:
        logger.warning('reset_user_data user=%s: %d deletes failed', user_id, failed)
    else:
        logger.info(
            'reset_user_data user=%s removed tasks=%d notes=%d lists=%d tags=%d',
            user_id, len(task_ids), len(note_ids), len(list_ids), len(tag_ids),
        )

    await seed_user_defaults(user_id)
    lists, tags = await load_defaults(user_id)
    return {'lists': lists, 'tags': tags, 'tasks': [], 'notes': [], 'failed': failed}
