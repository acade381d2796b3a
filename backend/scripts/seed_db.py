"""CLI script to create tables and seed reference data.
Usage: python scripts/seed_db.py [--truncate TABLE ...] [--database-url URL]
"""
import sys
import argparse
import asyncio
import logging
import pathlib
from typing import List, Optional
# Ensure `backend/` is on sys.path so `garagebuddy` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from garagebuddy.config import configure_logging
from garagebuddy.database import create_db_and_tables, create_engine, session_factory
from garagebuddy.models import Brand, GearboxType
from garagebuddy.repositories import SQLModelRepository
from garagebuddy.seeding import ApplicationDbContextSeeder

logger = logging.getLogger("garagebuddy.scripts.seed_db")

# Only these names may reach Repository.truncate, which interpolates them into SQL.
TRUNCATABLE = {
    Brand.__tablename__: Brand,
    GearboxType.__tablename__: GearboxType,
}


async def main(truncate: Optional[List[str]] = None, database_url: Optional[str] = None):
    """Create missing tables, optionally empty reference tables, then seed.

    Truncated tables lose their seeded rows, so the following seeding run
    loads them again from the static data files.
    """
    engine = create_engine(database_url)
    try:
        await create_db_and_tables(engine)
        async with session_factory(engine)() as session:
            for table in truncate or []:
                repository = SQLModelRepository(session, TRUNCATABLE[table])
                await repository.truncate(table)
                print(f'Truncated {table}')
            written = await ApplicationDbContextSeeder().seed(session)
            print(f'Seeded {written} row(s)')
    finally:
        await engine.dispose()


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--truncate', action='append', choices=sorted(TRUNCATABLE), help='Empty this reference table before seeding')
    parser.add_argument('--database-url', help='Override DATABASE_URL')
    args = parser.parse_args()
    configure_logging()
    asyncio.run(main(truncate=args.truncate, database_url=args.database_url))
