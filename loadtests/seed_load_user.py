"""Seed or reset a handle/PIN user for Locust scenarios."""

from __future__ import annotations

import argparse
import asyncio

from subway_tracker.config import get_settings
from subway_tracker.db.session import Database
from subway_tracker.services.user_service import UserService
from subway_tracker.services.visit_service import VisitService


async def seed_user(handle: str, credential: str) -> None:
    """Create the load-test user, or reset its PIN and clear its visits."""
    settings = get_settings()
    database = Database(settings.database.url)
    user_service = UserService(pin_hash_rounds=settings.auth.pin_hash_rounds)

    try:
        await database.run_migrations(auth_settings=settings.auth)
        async with database.session_factory() as session:
            existing = await user_service.get_user_by_handle(db_session=session, handle=handle)
            if existing is None:
                user = await user_service.register_user(
                    db_session=session, handle=handle, credential=credential
                )
                print(f"created load-test user: {user.handle}")
                return

            existing.credential = user_service.hash_credential(credential)
            await session.commit()
            await VisitService().clear_visited(db_session=session, user_id=existing.id)
            print(f"reset load-test user: {existing.handle}")
    finally:
        await database.dispose()


def _parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--handle", default="loadtest")
    parser.add_argument("--pin", default="2468")
    return parser.parse_args()


def main() -> None:
    """Entrypoint."""
    args = _parse_args()
    asyncio.run(seed_user(handle=args.handle, credential=args.pin))


if __name__ == "__main__":
    main()
