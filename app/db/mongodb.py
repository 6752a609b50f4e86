# mongodb.py

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from app.core.config import (
    MONGO_URI, MONGO_DB,
    COLLECTION_WAREHOUSE_STOCKS, COLLECTION_INSTITUTION_STOCKS, COLLECTION_REQUIREMENTS,
    COLLECTION_LOGISTICS, COLLECTION_USAGE_LOGS, COLLECTION_RECEIPT_LOGS,
)
from app.utiles.logger import get_logger

logger = get_logger(__name__)

# Global client and db instances
# tz_aware so expiry dates come back comparable with the UTC datetimes we write
client = AsyncIOMotorClient(MONGO_URI, tz_aware=True)
db = client[MONGO_DB]


async def connect_to_mongo():
    """Connect to MongoDB when app starts."""
    await client.admin.command("ping")

    # Ensure indexes are created
    await ensure_indexes()

    logger.info("✅ MongoDB connection established")


async def close_mongo_connection():
    """Close MongoDB connection when app shuts down."""
    if client:
        client.close()
        logger.warning("⚠️ MongoDB connection closed")


async def ensure_indexes():
    """Create necessary indexes for collections."""
    live = {"is_deleted": False}

    # ---------------- Stock ledger ----------------
    await db[COLLECTION_WAREHOUSE_STOCKS].create_index("stock_id", unique=True)
    # one live record per (warehouse, medicine); soft-deleted ones are kept for audit
    await db[COLLECTION_WAREHOUSE_STOCKS].create_index(
        [("warehouse_id", ASCENDING), ("medicine_id", ASCENDING)],
        unique=True, partialFilterExpression=live,
    )
    await db[COLLECTION_WAREHOUSE_STOCKS].create_index([("is_deleted", ASCENDING), ("batches.expiry_date", ASCENDING)])

    await db[COLLECTION_INSTITUTION_STOCKS].create_index("stock_id", unique=True)
    await db[COLLECTION_INSTITUTION_STOCKS].create_index(
        [("institution_id", ASCENDING), ("medicine_id", ASCENDING)],
        unique=True, partialFilterExpression=live,
    )

    # ---------------- Requirements / Logistics ----------------
    await db[COLLECTION_REQUIREMENTS].create_index("requirement_id", unique=True)
    await db[COLLECTION_REQUIREMENTS].create_index([("institution_id", ASCENDING), ("overall_status", ASCENDING)])
    await db[COLLECTION_REQUIREMENTS].create_index([("warehouse_id", ASCENDING), ("overall_status", ASCENDING)])

    await db[COLLECTION_LOGISTICS].create_index("logistic_id", unique=True)
    await db[COLLECTION_LOGISTICS].create_index("shipment_id", unique=True)
    await db[COLLECTION_LOGISTICS].create_index([("warehouse_id", ASCENDING), ("status", ASCENDING)])
    await db[COLLECTION_LOGISTICS].create_index([("institution_id", ASCENDING), ("received_status", ASCENDING)])

    # ---------------- Audit logs ----------------
    await db[COLLECTION_USAGE_LOGS].create_index(
        [("institution_id", ASCENDING), ("type", ASCENDING), ("created_at", DESCENDING)]
    )
    await db[COLLECTION_RECEIPT_LOGS].create_index(
        [("warehouse_id", ASCENDING), ("medicine_id", ASCENDING), ("created_at", DESCENDING)]
    )

    logger.info("✅ Indexes ensured for stock ledger, requirements, logistics and audit logs")
