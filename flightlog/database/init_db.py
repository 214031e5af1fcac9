import asyncio
from flightlog.database.db import FlightDatabase
from flightlog.database.models import Base


async def init_db():
    db = FlightDatabase()
    await db.init()
    print(f"Created tables: {list(Base.metadata.tables.keys())}")
    await db.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
