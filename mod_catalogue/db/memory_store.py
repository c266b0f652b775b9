"""In-process stores with the same semantics as the Mongo ones.

Used by the test-suite and by the crawl runner's ``--memory`` mode when no
MongoDB is available.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mod_catalogue.models.mod import Mod, Page, UpdateData
from mod_catalogue.models.search import SearchOptions, matches, sort_key_fields, text_score


def _sortable(value: Any) -> Tuple[bool, Any]:
    # Mongo orders missing fields before any value
    return (value is not None, value)


class MemoryModStore:
    def __init__(self, mods: Optional[Sequence[Mod]] = None) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        for mod in mods or []:
            self._docs[mod.id] = mod.to_document()

    async def upsert(self, mods: Sequence[Mod]) -> Tuple[int, int]:
        inserted = updated = 0
        for mod in mods:
            doc = mod.to_document()
            previous = self._docs.get(mod.id)
            if previous is None:
                inserted += 1
            elif previous != doc:
                updated += 1
            self._docs[mod.id] = doc
        return inserted, updated

    async def delete(self, mod_id: str) -> None:
        self._docs.pop(mod_id, None)

    async def find_one(self, mod_id: str) -> Optional[Mod]:
        doc = self._docs.get(mod_id)
        return Mod.from_document(doc) if doc else None

    async def estimated_count(self) -> int:
        return len(self._docs)

    async def search(self, options: SearchOptions) -> Page:
        found: List[Mod] = [m for m in (Mod.from_document(d) for d in self._docs.values()) if matches(m, options)]

        # stable sorts applied from the lowest priority key to the highest
        for field, direction in reversed(sort_key_fields(options)):
            found.sort(key=lambda m: _sortable(m.to_document().get(field)), reverse=direction == -1)
        if options.search is not None:
            found.sort(key=lambda m: text_score(m, options.search), reverse=True)

        start = options.page * options.per_page
        return Page(total_item_count=len(found), items=found[start:start + options.per_page])


class MemoryUpdateStore:
    def __init__(self, last_update: Optional[UpdateData] = None) -> None:
        self._last_update = last_update
        self.errors: List[Dict[str, Any]] = []

    async def get_last_update(self) -> Optional[UpdateData]:
        return self._last_update

    async def set_last_update(self, data: UpdateData) -> None:
        self._last_update = data

    async def log_error(self, context: str, message: str) -> None:
        self.errors.append({"timestamp": datetime.now(timezone.utc), "context": context, "message": message})
