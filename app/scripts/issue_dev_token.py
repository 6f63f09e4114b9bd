"""
Development helper — prints a signed access token for a seeded role.

Usage:
    python -m app.scripts.issue_dev_token SYSTEM_ADMIN
    python -m app.scripts.issue_dev_token SCALE_OPERATOR --user-id 42

The token carries the `role_id` and `sub` claims the authorization
engine reads.  Never use this against a production secret.
"""

import argparse
import asyncio
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.security import create_access_token
from app.models.role import Role


async def issue_token(role_name: str, user_id: str) -> str | None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with session_factory() as session:
            role = (
                await session.execute(select(Role).where(Role.name == role_name))
            ).scalar_one_or_none()
    finally:
        await engine.dispose()

    if role is None:
        return None
    return create_access_token(
        {settings.USER_ID_CLAIM: user_id, settings.ROLE_ID_CLAIM: str(role.id)}
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("role", help="Role name, e.g. SYSTEM_ADMIN")
    parser.add_argument("--user-id", default=str(uuid.uuid4()))
    args = parser.parse_args()

    token = asyncio.run(issue_token(args.role, args.user_id))
    if token is None:
        print(f"\n❌  Role '{args.role}' not found. Start the app once first so")
        print("   permissions & roles get seeded, then re-run this script.")
        raise SystemExit(1)

    print(token)


if __name__ == "__main__":
    main()
