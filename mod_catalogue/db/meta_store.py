from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

from pymongo import DESCENDING
from pymongo.asynchronous.database import AsyncDatabase

from mod_catalogue.models.mod import UpdateData


class UpdateStore(Protocol):
    async def get_last_update(self) -> Optional[UpdateData]: ...

    async def set_last_update(self, data: UpdateData) -> None: ...

    async def log_error(self, context: str, message: str) -> None: ...


class MongoUpdateStore:
    """Sweep stats live in a single keyless document of ``meta``; refresh failures go to ``errors``."""

    def __init__(self, db: AsyncDatabase) -> None:
        self._meta = db["meta"]
        self._errors = db["errors"]

    async def ensure_indexes(self) -> None:
        await self._errors.create_index([("timestamp", DESCENDING)])

    async def get_last_update(self) -> Optional[UpdateData]:
        doc = await self._meta.find_one({}, projection={"_id": False})
        return UpdateData.model_validate(doc) if doc else None

    async def set_last_update(self, data: UpdateData) -> None:
        await self._meta.update_one({}, {"$set": data.model_dump()}, upsert=True)

    async def log_error(self, context: str, message: str) -> None:
        await self._errors.insert_one(
            {"timestamp": datetime.now(timezone.utc), "context": context, "message": message}
        )
