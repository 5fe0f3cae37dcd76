"""
backend/oddsline/database.py

Purpose:
    MongoDB connection bootstrap and index management for users, fixtures,
    bets and the wallet collections.

Dependencies:
    - motor.motor_asyncio
    - oddsline.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from oddsline.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("oddsline.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info("Connected to MongoDB database %s", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Users ----
    await db.users.create_index("email", unique=True)

    # ---- Fixtures ----
    await db.fixtures.create_index([("status", 1), ("start_time", 1)])
    await db.fixtures.create_index("is_live")
    # Periodic odds broadcast scans for recently changed odds
    await db.fixtures.create_index("odds_updated_at")

    # ---- Bets ----
    await db.bets.create_index([("user_id", 1), ("placed_at", -1)])
    await db.bets.create_index("fixture_id")
    # Settlement scans pending bets
    await db.bets.create_index("status")

    # ---- Wallet ----
    await db.deposits.create_index([("user_id", 1), ("created_at", -1)])
    await db.deposits.create_index("status")
    await db.withdrawals.create_index([("user_id", 1), ("created_at", -1)])
    await db.withdrawals.create_index("status")
    await db.wallet_transactions.create_index([("user_id", 1), ("created_at", -1)])
