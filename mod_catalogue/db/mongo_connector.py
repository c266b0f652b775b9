from typing import Optional

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from mod_catalogue.config import Settings

_client: Optional[AsyncMongoClient] = None


def get_client(settings: Settings) -> AsyncMongoClient:
    """Return the process-wide Mongo client, creating it on first use."""
    global _client
    if _client is None:
        uri = settings.require_mongo_uri()
        try:
            _client = AsyncMongoClient(uri, tz_aware=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create Mongo client for URI '{uri}'. Check the URI format and credentials.\nError: {exc}"
            ) from exc
    return _client


def get_database(settings: Settings) -> AsyncDatabase:
    return get_client(settings)[settings.mongo_db_name]


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
