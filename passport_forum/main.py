"""Expire pending posts and comments whose verification never completed."""

import asyncio
import logging
from datetime import timedelta

from dotenv import load_dotenv

from .infrastructure.dependencies import ServiceContainer

logger = logging.getLogger(__name__)


async def main():
    """Run one stale-pending sweep."""
    print("Passport Forum - stale verification sweep")
    print("-----------------------------------------")

    container = ServiceContainer()
    await container.startup()
    try:
        ttl = container.config.pending_ttl_seconds
        service = container.get_publication_service()
        expired = await service.expire_stale_pending(timedelta(seconds=ttl))

        print(f"\nPending for more than {ttl}s:")
        for kind, count in expired.items():
            print(f"  {kind}s failed: {count}")
    finally:
        await container.shutdown()


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(main())
