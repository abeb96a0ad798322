from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from retailhub.utils.logger import Logger
from .settings import settings

logger = Logger("database")


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    """Create the indexes the services rely on. Safe to call repeatedly."""
    # At most one product per creation proposal.
    await database["products"].create_index(
        "source_proposal_id", unique=True, sparse=True, background=True
    )
    await database["products"].create_index([("company_id", 1), ("store_id", 1)], background=True)
    await database["proposals"].create_index([("company_id", 1), ("status", 1), ("created_at", -1)], background=True)
    await database["proposals"].create_index("store_id", background=True)
    await database["notifications"].create_index([("user_id", 1), ("read", 1)], background=True)
    await database["audit_logs"].create_index([("entity_id", 1), ("created_at", -1)], background=True)


class DatabaseManager:
    """MongoDB connection manager — true singleton."""

    _instance = None
    _client: AsyncIOMotorClient | None = None
    _database: AsyncIOMotorDatabase | None = None
    _connected: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            self._client = AsyncIOMotorClient(settings.mongodb_uri)
            self._database = self._client[settings.database_name]
            await self._client.admin.command("ping")
            await ensure_indexes(self._database)
            self._connected = True
            logger.info(f"Connected to MongoDB [{settings.database_name}]")
        except Exception as e:
            self._connected = False
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._connected = False
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._database

    @property
    def is_connected(self) -> bool:
        return self._connected


# ── Module-level singleton ──────────────────────────────────────
db_manager = DatabaseManager()


async def get_database() -> AsyncIOMotorDatabase:
    """FastAPI dependency — returns the database instance."""
    if not db_manager.is_connected:
        await db_manager.connect()
    return db_manager.database
