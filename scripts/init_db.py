"""Create the complaints table in the configured database (DATABASE_URL)."""
import asyncio

from complaints.core.database import Base, close_db, init_db
from complaints.core.config import get_settings


async def create_tables():
    """Create all tables."""
    settings = get_settings()
    await init_db()

    print(f"Registered tables: {len(Base.metadata.tables)}")
    for table in Base.metadata.tables:
        print(f"   - {table}")
    print(f"\nAll tables created in {settings.database_url.split('://', 1)[0]} database")

    await close_db()


if __name__ == "__main__":
    asyncio.run(create_tables())
