#!/usr/bin/env python3
"""List users in the database with their account-linking state.

Usage:
  DATABASE_URL="sqlite+aiosqlite:///./organic_mind.db" python scripts/list_users.py
"""
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import asyncio

from sqlmodel import select


async def main():
    # import here so we pick up DATABASE_URL if set
    from organic_mind.auth import account_state
    from organic_mind.db import async_session, init_db
    from organic_mind.models import User

    print(f"Using DATABASE_URL={os.getenv('DATABASE_URL')}")
    await init_db()

    async with async_session() as sess:
        users = (await sess.exec(select(User).order_by(User.created_at))).all()
    if not users:
        print("No users found in DB.")
        return
    print(f"Found {len(users)} users:\n")
    for u in users:
        state = account_state(u)
        print(f"{u.id}  {u.email}  {u.name!r}\n  state: {state.value if state else 'none'}\n  last login: {u.last_login_at}\n")


if __name__ == '__main__':
    asyncio.run(main())
