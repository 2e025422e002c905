"""
Academy API — Process-wide MongoDB handle

One handle per process, created on first use and never torn down while the
process serves requests. Concurrent first callers share a single dial.
"""
import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from academy.core.config import get_settings
from academy.core.errors import ConfigError, TransportError

settings = get_settings()
logger = logging.getLogger(__name__)

USERS = "users"
CLASSES = "classes"

# Reported by /api/health
DISCONNECTED = 0
CONNECTED = 1
CONNECTING = 2

_client: AsyncIOMotorClient | None = None
_database: AsyncIOMotorDatabase | None = None
_dial: asyncio.Future | None = None


def _create_client(uri: str) -> AsyncIOMotorClient:
    # The driver never queues operations while disconnected; server selection
    # fails after the timeout instead.
    return AsyncIOMotorClient(
        uri,
        serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGODB_SOCKET_TIMEOUT_MS,
    )


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    await database[USERS].create_index("email", unique=True)
    await database[USERS].create_index("idpId", unique=True)


async def _connect(uri: str) -> tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    client = _create_client(uri)
    try:
        await client.admin.command("ping")
        database = client.get_default_database(default=settings.MONGODB_DB)
        await ensure_indexes(database)
    except PyMongoError as exc:
        client.close()
        raise TransportError(f"MongoDB dial failed: {exc}") from exc
    logger.info("Connected to MongoDB database %s", database.name)
    return client, database


async def get_connection() -> AsyncIOMotorDatabase:
    """
    Return the shared database handle.
    Starts a dial when none is in flight, otherwise awaits the one that is.
    Raises ConfigError when MONGODB_URI is unset, TransportError when the dial fails.
    """
    global _client, _database, _dial
    if _database is not None:
        return _database

    if _dial is None:
        if not settings.MONGODB_URI:
            raise ConfigError("MONGODB_URI is not set")
        _dial = asyncio.ensure_future(_connect(settings.MONGODB_URI))

    dial = _dial
    try:
        # A caller that goes away must not cancel the dial other callers await
        client, database = await asyncio.shield(dial)
    except Exception:
        if _dial is dial:
            _dial = None
        raise

    if _database is None:
        _client, _database = client, database
    return _database


def connection_state() -> int:
    if _database is not None:
        return CONNECTED
    if _dial is not None and not _dial.done():
        return CONNECTING
    return DISCONNECTED


def install(database: AsyncIOMotorDatabase, client: AsyncIOMotorClient | None = None) -> None:
    """Use an already-open handle (tests, scripts)."""
    global _client, _database, _dial
    _client, _database, _dial = client, database, None


def reset() -> None:
    global _client, _database, _dial
    _client, _database, _dial = None, None, None


async def close_connection() -> None:
    global _client
    if _client is not None:
        _client.close()
    reset()
