from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from mod_catalogue.db.mod_store import ModStore
from mod_catalogue.models.mod import Mod, UpdateData

from .mass_requester import ChunkStream, MassRequester

logger = logging.getLogger(__name__)


async def persist_mod_stream(
    stream: ChunkStream[Optional[Mod]],
    store: ModStore,
    *,
    started_at: datetime,
) -> UpdateData:
    """Upsert every chunk of ``stream`` as it arrives and tally the outcome.

    Each chunk's upsert runs as its own task so storage writes overlap with
    fetching of the next chunk. ``None`` entries (inaccessible items) count as
    skipped; units that exhausted their attempts count as errored only.
    """
    upserts: List["asyncio.Task[Tuple[int, int]]"] = []
    skipped = 0

    # leaving early (a failed upsert, a cancelled sibling crawl) cancels the producer
    async with stream:
        async for chunk in stream:
            mods = [mod for mod in chunk if mod is not None]
            skipped += len(chunk) - len(mods)
            upserts.append(asyncio.create_task(store.upsert(mods)))

    MassRequester.log_errors(stream.errors, "mods")

    logger.debug("Awaiting %d upsert operations", len(upserts))
    inserted = updated = 0
    for ins, upd in await asyncio.gather(*upserts):
        inserted += ins
        updated += upd

    return UpdateData(
        timestamp=started_at,
        num_inserted=inserted,
        num_updated=updated,
        num_errored=len(stream.errors),
        # failed units also resolve to None
        num_skipped=max(0, skipped - len(stream.errors)),
    )
