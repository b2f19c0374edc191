#!/usr/bin/env python3
"""Create a password user (or reset an existing user's password).

Usage:
    python scripts/add_user.py email "Full Name" [password] [--db PATH]

New users get their default lists and tags seeded; for existing users the
seeding is re-run, which only fills in whatever is missing.
"""
# Make the script runnable from anywhere by putting the project root
# (parent of scripts/) on sys.path.
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio
import getpass
from typing import Optional


async def _create_or_update(email: str, name: str, password: str) -> Optional['User']:
    # Import lazily so `-h` works without the runtime dependencies and so
    # DATABASE_URL set in main() is picked up by the engine.
    from sqlalchemy.exc import IntegrityError
    from sqlmodel import select
    from organic_mind.auth import hash_password
    from organic_mind.db import async_session, init_db
    from organic_mind.defaults import seed_user_defaults
    from organic_mind.models import User
    await init_db()
    email = email.strip().lower()
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.email == email))
        u = q.first()
        if u is None:
            u = User(name=name, email=email)
        u.password_hash = hash_password(password)
        u.has_password = True
        sess.add(u)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            print(f"Failed to save user {email}", file=sys.stderr)
            return None
        await sess.refresh(u)
    await seed_user_defaults(u.id)
    return u


def parse_args(argv):
    p = argparse.ArgumentParser(description="Create or update a password user")
    p.add_argument("email", help="login email")
    p.add_argument("name", help="display name")
    p.add_argument("password", nargs="?", help="password (omit to prompt)")
    p.add_argument("--db", default=None, help="sqlite file to use instead of DATABASE_URL")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv or sys.argv[1:])
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    password = args.password
    if not password:
        pw = getpass.getpass("Password: ")
        pw2 = getpass.getpass("Confirm password: ")
        if pw != pw2:
            print("Passwords do not match", file=sys.stderr)
            return 2
        if pw == "":
            print("Empty password not allowed", file=sys.stderr)
            return 2
        password = pw

    user = asyncio.run(_create_or_update(args.email, args.name, password))
    if not user:
        return 2
    print(f"User '{user.email}' saved with id={user.id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
