"""MongoDB database connection and management."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
from braintriage.config.settings import settings
import logging

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect_db(cls):
        """Connect to MongoDB and make sure the lookup indexes exist."""
        try:
            cls.client = AsyncIOMotorClient(settings.mongodb_uri)
            cls.database = cls.client[settings.mongodb_database]

            # Test connection
            await cls.client.admin.command("ping")
            logger.info(f"Connected to MongoDB: {settings.mongodb_database}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

        await cls.ensure_indexes()

    @classmethod
    async def ensure_indexes(cls):
        """Create the indexes the triage queries rely on."""
        db = cls.get_database()
        patients = db[settings.mongodb_collection_patients]
        predictions = db[settings.mongodb_collection_predictions]
        metrics = db[settings.mongodb_collection_metrics]

        await patients.create_index("patient_id", unique=True)
        await patients.create_index("case_id", unique=True)
        await predictions.create_index("prediction_id", unique=True)
        await predictions.create_index([("severity_level", 1), ("queue_rank", 1)])
        await predictions.create_index("patient_id")
        await metrics.create_index("prediction_id", unique=True)
        logger.info("MongoDB indexes ensured")

    @classmethod
    async def close_db(cls):
        """Close MongoDB connection."""
        if cls.client:
            cls.client.close()
            logger.info("Closed MongoDB connection")

    @classmethod
    def get_database(cls) -> AsyncIOMotorDatabase:
        """Get database instance."""
        if cls.database is None:
            raise RuntimeError("Database not initialized. Call connect_db() first.")
        return cls.database

    @classmethod
    def get_collection(cls, collection_name: str):
        """Get a collection from the database."""
        db = cls.get_database()
        return db[collection_name]


# Convenience functions
async def get_patients_collection():
    """Get patients collection."""
    return Database.get_collection(settings.mongodb_collection_patients)


async def get_predictions_collection():
    """Get predictions collection."""
    return Database.get_collection(settings.mongodb_collection_predictions)


async def get_metrics_collection():
    """Get metrics collection."""
    return Database.get_collection(settings.mongodb_collection_metrics)
