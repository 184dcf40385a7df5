#!/usr/bin/env python3
"""
Age out stored designs, expired editor markers and stale cart lines.

Meant to run from cron once a day.

USAGE:
  # Use DESIGN_MAX_AGE_DAYS from settings:
  python scripts/maintenance/reap_designs.py

  # Override the age threshold and use the prod env file:
  python scripts/maintenance/reap_designs.py --days 14 --env prod
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT))


async def reap(env: str = "dev", days: int = 0):
    env_file = f".env.{env}" if env in ("dev", "prod") else env
    env_path = PROJECT_ROOT / env_file
    if env_path.exists():
        import dotenv

        dotenv.load_dotenv(env_path)

    from libs.common.config import get_settings
    from libs.common.logging import configure_logging
    from libs.db.config import AsyncSessionLocal, engine
    from services.design_service.services.design_store import reap_all

    configure_logging()
    max_age = timedelta(days=days or get_settings().DESIGN_MAX_AGE_DAYS)

    async with AsyncSessionLocal() as session:
        summary = await reap_all(session, max_age)

    await engine.dispose()
    print(
        f"Removed {summary.designs_removed} designs, "
        f"{summary.markers_removed} markers, "
        f"{summary.cart_lines_removed} cart lines older than {max_age.days} days"
    )


def main():
    parser = argparse.ArgumentParser(description="Reap old design state")
    parser.add_argument("--env", default="dev", help="dev, prod or a path to an env file")
    parser.add_argument(
        "--days", type=int, default=0, help="Age threshold (default: settings)"
    )
    args = parser.parse_args()
    asyncio.run(reap(env=args.env, days=args.days))


if __name__ == "__main__":
    main()
