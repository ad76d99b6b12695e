from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for plan catalog and store lookups."""
        try:
            # Plan catalog - key is the identity and must stay unique,
            # including soft-deleted plans
            await self.db.plan_configs.create_index("key", unique=True)
            await self.db.plan_configs.create_index("isActive")

            # Stores - plan index backs the "plan in use" check on delete
            await self.db.stores.create_index("store_id", unique=True)
            await self.db.stores.create_index("plan")
            await self.db.stores.create_index([("plan", 1), ("plan_override_enabled", 1)])

            # Review counter settings
            try:
                await self.db.review_count_settings.create_index("store_id", unique=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.review_count_settings.create_index([("enabled", 1), ("mode", 1)])

            # Audit log indexes - for timeline queries
            await self.db.audit_logs.create_index([("resource_type", 1), ("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("timestamp")
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

