#!/usr/bin/env python3
"""Wipe a user's tasks, notes and custom lists/tags, keeping the defaults.

Usage:
    python scripts/reset_user_data.py email [--db PATH]
"""
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio
import logging


async def _reset(email: str) -> int:
    from sqlmodel import select
    from organic_mind.db import async_session, init_db
    from organic_mind.defaults import reset_user_data
    from organic_mind.models import User
    await init_db()
    async with async_session() as sess:
        u = (await sess.exec(select(User).where(User.email == email.strip().lower()))).first()
    if u is None:
        print(f"No user with email {email}", file=sys.stderr)
        return 1
    state = await reset_user_data(u.id)
    print(f"Reset {u.email}: {len(state['lists'])} lists, {len(state['tags'])} tags kept; {state['failed']} deletes failed")
    return 0


def main(argv=None):
    p = argparse.ArgumentParser(description="Reset a user's data to the defaults")
    p.add_argument("email")
    p.add_argument("--db", default=None, help="sqlite file to use instead of DATABASE_URL")
    args = p.parse_args(argv or sys.argv[1:])
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s:%(name)s: %(message)s')
    return asyncio.run(_reset(args.email))


if __name__ == "__main__":
    raise SystemExit(main())
