import asyncio
import os
import sys

# Add project root to path
sys.path.append(os.getcwd())

from dashboard_app.config import Settings, configure_logging
from dashboard_app.database import Database


async def deploy():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    print(f"Deploying schema to: {settings.database_url.split('@')[-1]}")

    db = Database(settings.database_url)
    try:
        await db.init()
        print("Schema successfully deployed!")
    finally:
        await db.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(deploy())
    except Exception as e:
        import traceback
        traceback.print_exc()
        print(f"Deployment failed: {e}")
        sys.exit(1)
