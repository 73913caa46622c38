#!/usr/bin/env python3
"""
Seed the database with synthetic login attempts and device aggregates.

Usage:
    python seed_mock_data.py                  # 500 attempts across 25 users
    python seed_mock_data.py --count 2000     # more attempts
    python seed_mock_data.py --force-fresh    # wipe attempts/devices first
    python seed_mock_data.py --seed 42        # reproducible output
"""

import argparse
import asyncio
import uuid

from sqlalchemy import delete

from loginguard.database import async_session, close_db, init_db
from loginguard.models import LoginAttempt, UserDevice
from loginguard.services.device_trust import DeviceLogin, DeviceTrustStore
from loginguard.services.threshold_config import ThresholdConfig
from loginguard.utils.logging_config import configure_logging, get_logger
from loginguard.utils.mock_data import generate_attempts
from loginguard.utils.user_agent import parse_user_agent

logger = get_logger(__name__)


async def seed_db(count: int, users: int, force_fresh: bool, seed: int = None):
    await init_db()
    await ThresholdConfig(async_session).load()

    user_ids = [uuid.uuid4() for _ in range(users)]
    attempts = generate_attempts(count, user_ids=user_ids, seed=seed)

    async with async_session() as db:
        async with db.begin():
            if force_fresh:
                deleted_attempts = await db.execute(delete(LoginAttempt))
                deleted_devices = await db.execute(delete(UserDevice))
                logger.info(
                    f"Removed {deleted_attempts.rowcount} attempts and "
                    f"{deleted_devices.rowcount} devices"
                )

            store = DeviceTrustStore(db)
            devices = 0
            # Oldest first so device aggregates end on the latest attempt
            for attempt in sorted(attempts, key=lambda a: a.values["attempted_at"]):
                db.add(LoginAttempt(**attempt.values))
                values = attempt.values
                if not values["success"] or values["user_id"] is None:
                    continue

                parsed_ua = parse_user_agent(attempt.user_agent)
                await db.flush()
                await store.upsert_login(
                    DeviceLogin(
                        user_id=values["user_id"],
                        device_fingerprint=values["device_fingerprint"],
                        client_fingerprint=values["client_fingerprint"],
                        risk_score=values["risk_score"],
                        risk_level=values["risk_level"],
                        security_flags=values["security_flags"],
                        device_type=parsed_ua["device_type"],
                        browser_name=parsed_ua["browser"],
                        os_name=parsed_ua["os"],
                        ip_address=values["ip_address"],
                        country=values["country"],
                        region=values["region"],
                        city=values["city"],
                        location_confidence=values["location_confidence"],
                        occurred_at=values["attempted_at"],
                    )
                )
                devices += 1

    logger.info(f"Seeded {len(attempts)} login attempts and {devices} device logins")
    await close_db()


def main():
    parser = argparse.ArgumentParser(description="Seed synthetic fingerprinting data")
    parser.add_argument("--count", type=int, default=500, help="Attempts to generate")
    parser.add_argument("--users", type=int, default=25, help="Distinct user ids")
    parser.add_argument(
        "--force-fresh",
        action="store_true",
        help="Remove all existing attempts and devices first",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(seed_db(args.count, args.users, args.force_fresh, args.seed))


if __name__ == "__main__":
    main()
