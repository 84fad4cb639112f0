"""
Super Admin Bootstrap

Creates (or repairs) the platform super admin in the identity provider and
the users table. Safe to run more than once.

Run from project root:
    python scripts/setup_super_admin.py --email owner@example.com --password '...'
"""

import argparse
import asyncio
import getpass
import sys

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from restrona.core.config import setup_logging
from restrona.core.errors import RestronaError
from restrona.database import async_session_maker, engine, init_db
from restrona.services.identity import get_identity_provider
from restrona.services.staff import StaffService


async def bootstrap(email: str, password: str, name: str) -> int:
    await init_db()
    try:
        async with async_session_maker() as db:
            user = await StaffService(db, get_identity_provider()).ensure_super_admin(email, password, name)
        print(f"✅ Super admin ready: {user.email} ({user.id})")
        return 0
    except RestronaError as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the platform super admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument("--name", default="Super Admin")
    args = parser.parse_args()

    setup_logging()
    password = args.password or getpass.getpass("Password: ")
    sys.exit(asyncio.run(bootstrap(args.email, password, args.name)))
