"""Release reservations still unpaid after the hold period.

Run from cron (or any scheduler) every few minutes:

    python -m scripts.expire_reservations [--hold-minutes 60]
"""

import argparse
import asyncio

from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.middleware.logging import configure_logging
from app.services.scheduler_service import SchedulerService


async def expire_reservations(hold_minutes: int) -> int:
    """Cancel stale ``pending_payment`` appointments and free their slots."""
    async with AsyncSessionLocal() as session:
        expired = await SchedulerService(session).expire_stale_reservations(hold_minutes)

    await engine.dispose()
    return expired


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--hold-minutes",
        type=int,
        default=settings.reservation_hold_minutes,
        help="Age after which an unpaid reservation is released",
    )
    args = parser.parse_args()

    configure_logging()
    expired = asyncio.run(expire_reservations(args.hold_minutes))
    print(f"✓ Released {expired} stale reservation(s)")


if __name__ == "__main__":
    main()
