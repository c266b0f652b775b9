"""Storage of catalogued mods.

``ModStore`` is the contract the crawler side depends on; ``MongoModStore``
implements it on the ``mods`` collection.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Protocol, Sequence, Tuple

from pymongo import ASCENDING, TEXT, UpdateOne
from pymongo.asynchronous.database import AsyncDatabase

from mod_catalogue.models.mod import Mod, Page
from mod_catalogue.models.search import SearchOptions, build_mongo_filter, build_mongo_sort


class ModStore(Protocol):
    async def upsert(self, mods: Sequence[Mod]) -> Tuple[int, int]:
        """Insert or replace mods by id, returning (inserted, updated)."""

    async def delete(self, mod_id: str) -> None: ...

    async def find_one(self, mod_id: str) -> Optional[Mod]: ...

    async def estimated_count(self) -> int: ...

    async def search(self, options: SearchOptions) -> Page: ...


class MongoModStore:
    collection_name = "mods"

    def __init__(self, db: AsyncDatabase) -> None:
        self._col = db[self.collection_name]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("title", TEXT), ("description", TEXT)])
        await self._col.create_index([("catalogue_last_updated", ASCENDING)])

    async def upsert(self, mods: Sequence[Mod]) -> Tuple[int, int]:
        if not mods:
            return 0, 0
        ops = []
        for mod in mods:
            doc = mod.to_document()
            doc.pop("_id")
            update = {"$set": doc}
            if mod.updated is None:
                update["$unset"] = {"updated": ""}
            ops.append(UpdateOne({"_id": mod.id}, update, upsert=True))
        result = await self._col.bulk_write(ops, ordered=False)
        return result.upserted_count, result.modified_count

    async def delete(self, mod_id: str) -> None:
        await self._col.delete_one({"_id": mod_id})

    async def find_one(self, mod_id: str) -> Optional[Mod]:
        doc = await self._col.find_one({"_id": mod_id})
        return Mod.from_document(doc) if doc else None

    async def estimated_count(self) -> int:
        return await self._col.estimated_document_count()

    async def search(self, options: SearchOptions) -> Page:
        flt = build_mongo_filter(options)
        cursor = (
            self._col.find(flt)
            .sort(build_mongo_sort(options))
            .skip(options.page * options.per_page)
            .limit(options.per_page)
        )
        total, docs = await asyncio.gather(self._col.count_documents(flt), cursor.to_list())
        return Page(total_item_count=total, items=[Mod.from_document(d) for d in docs])
