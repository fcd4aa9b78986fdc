import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.append(os.getcwd())

from dashboard_app.config import Settings, configure_logging
from dashboard_app.database import Database
from dashboard_app.services.batching import BATCH_SIZE, create_processing_batch


async def run(limit: int):
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    db = Database(settings.database_url)
    try:
        await db.init()
        async with db.session() as session:
            batch = await create_processing_batch(session, limit=limit)
        if batch:
            print(f"Created batch {batch.id}")
        else:
            print("No unprocessed transactions to batch.")
    finally:
        await db.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Group unprocessed transactions into a classification batch.")
    parser.add_argument("--limit", type=int, default=BATCH_SIZE)
    args = parser.parse_args()
    asyncio.run(run(args.limit))
