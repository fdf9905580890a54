import asyncio
import json

from config.settings import settings
from core.db import create_database
from models.booking import RouteSchedule
from models.db_models import Route


async def main(seed_file: str | None = None):
    """
    One-time script to create all tables in the configured MySQL database,
    optionally seeding routes from the same JSON file the in-memory store uses.
    """
    database = create_database(settings.MYSQL_ASYNC_URL)
    if database is None:
        raise RuntimeError(f"MYSQL_ASYNC_URL is not configured correctly: {settings.MYSQL_ASYNC_URL}")

    try:
        await database.create_all()
        print("✅ Database schema created/updated successfully.")

        if seed_file:
            with open(seed_file, "r", encoding="utf-8") as f:
                routes = json.load(f)
            async with database.session_maker() as session:
                async with session.begin():
                    for item in routes:
                        schedule = RouteSchedule.model_validate(item)
                        if await session.get(Route, schedule.id) is not None:
                            continue
                        row = schedule.model_dump(exclude={"stops"})
                        row["stops"] = [s.model_dump(mode="json", exclude_none=True) for s in schedule.stops]
                        session.add(Route(**row))
            print(f"✅ Seeded routes from {seed_file}")
    finally:
        await database.dispose()


if __name__ == "__main__":
    import sys

    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
