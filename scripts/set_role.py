"""
Change a user's role out of band.

There is no API path for role changes; operators run this against the
configured database:

    python scripts/set_role.py someone@example.com admin
"""

import asyncio
import sys

sys.path.insert(0, ".")

from sqlalchemy import update  # noqa: E402

from src.database import async_session_maker, close_db  # noqa: E402
from src.kernel.identity.repository import SqlAlchemyUserRepository  # noqa: E402
from src.kernel.models.user import User  # noqa: E402


async def set_role(email: str, role: str) -> int:
    async with async_session_maker() as session:
        user = await SqlAlchemyUserRepository(session).find_by_email(email)
        if user is None:
            return 0
        await session.execute(update(User).where(User.id == user.id).values(role=role))
        await session.commit()
        return 1


async def main() -> None:
    if len(sys.argv) != 3:
        print("usage: python scripts/set_role.py <email> <role>")
        sys.exit(2)
    email, role = sys.argv[1], sys.argv[2].strip().lower()
    try:
        updated = await set_role(email, role)
    finally:
        await close_db()
    print(f"Updated {updated} user(s)")
    sys.exit(0 if updated else 1)


if __name__ == "__main__":
    asyncio.run(main())
