"""
Motor connection to the realtime user-record store.

Only the "collection" and "inserts" data sources read from MongoDB; the
lifespan in main.py opens the connection for them and leaves it closed for
poll / demo / none.

    await connect_to_mongo()          # startup (never raises)
    users = get_collection("users")   # None while the store is down
    await ping()                      # used by /health
    await close_mongo_connection()    # shutdown

Change streams need a replica set: MongoDB Atlas, or a local
`mongod --replSet rs0`.
"""

import logging
import re
from typing import Optional

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from livemap.core.config import Settings, settings

logger = logging.getLogger(__name__)

SERVER_SELECTION_TIMEOUT_MS = 5000


class RecordStoreClient:
    """
    Process-wide Motor client and the selected database.

    Attributes (not module globals) so tests can patch .client and .db.
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    @property
    def connected(self) -> bool:
        return self.db is not None

    def reset(self) -> None:
        self.client = None
        self.db = None


db_client = RecordStoreClient()


async def connect_to_mongo(cfg: Settings = settings) -> bool:
    """
    Open the client and check it with a ping.

    On failure the store stays unset and the watchers report themselves
    disconnected; the dashboard keeps serving. Returns whether it worked.
    """
    logger.info("Connecting to record store at %s", _redact_uri(cfg.mongo_uri))
    client = AsyncIOMotorClient(
        cfg.mongo_uri,
        serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
        tlsCAFile=certifi.where(),
    )
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.warning("Record store unavailable at startup: %s", exc)
        client.close()
        db_client.reset()
        return False

    db_client.client = client
    db_client.db = client[cfg.mongo_db_name]
    logger.info("Record store connected (db: %s)", cfg.mongo_db_name)
    return True


async def close_mongo_connection() -> None:
    if db_client.client is not None:
        db_client.client.close()
        logger.info("Record store connection closed")
    db_client.reset()


async def ping() -> bool:
    """True when the server answers a ping right now."""
    if db_client.client is None:
        return False
    try:
        await db_client.client.admin.command("ping")
    except Exception as exc:
        logger.warning("Record store ping failed: %s", exc)
        return False
    return True


def get_db() -> AsyncIOMotorDatabase | None:
    return db_client.db


def get_collection(name: str) -> Optional[AsyncIOMotorCollection]:
    """The named collection, or None while the store is unavailable."""
    db = get_db()
    return None if db is None else db[name]


def _redact_uri(uri: str) -> str:
    """Hide user:password in a connection string."""
    return re.sub(r"://[^:/@]+:[^@]+@", "://<redacted>@", uri)
