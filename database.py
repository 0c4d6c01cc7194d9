# database.py
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from config import get_settings

logger = logging.getLogger(__name__)


class MongoDB:
    client: Optional[AsyncIOMotorClient] = None
    is_connected: bool = False


mongodb = MongoDB()


async def get_database() -> AsyncIOMotorDatabase:
    settings = get_settings()
    if mongodb.client is None:
        logger.info("Connecting to MongoDB...")
        mongodb.client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            serverSelectionTimeoutMS=15000,
            connectTimeoutMS=15000,
            maxPoolSize=10,
            retryWrites=True,
            tz_aware=True
        )
        try:
            # Test connection
            await mongodb.client.admin.command('ping')
            mongodb.is_connected = True
            logger.info("Successfully connected to MongoDB")
        except PyMongoError as e:
            # The client reconnects on its own; reads and writes report failures
            logger.error("Connection check failed: %s", e)
            mongodb.is_connected = False

    return mongodb.client[settings.DATABASE_NAME]


async def close_mongo_connection():
    if mongodb.client:
        mongodb.client.close()
        mongodb.client = None
        mongodb.is_connected = False
        logger.info("MongoDB connection closed")


async def create_indexes(db: AsyncIOMotorDatabase):
    try:
        # Auth indexes
        await db.auth_users.create_index([("email", ASCENDING)], unique=True)
        await db.auth_sessions.create_index([("user_id", ASCENDING)])

        # Profile indexes
        await db.profiles.create_index([("email", ASCENDING)], unique=True)
        await db.profiles.create_index([("role", ASCENDING)])

        # Assignment indexes
        await db.assignments.create_index([("created_at", DESCENDING)])
        await db.assignments.create_index([("created_by", ASCENDING)])

        # Submission indexes; one submission per student and assignment
        await db.submissions.create_index([("created_at", DESCENDING)])
        await db.submissions.create_index(
            [("assignment_id", ASCENDING), ("student_id", ASCENDING)],
            unique=True
        )
        logger.info("All database indexes created successfully")

    except PyMongoError as e:
        logger.warning("Could not create indexes: %s", e)
