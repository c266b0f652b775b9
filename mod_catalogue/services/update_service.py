"""Catalogue update orchestration.

UpdateService decides between the three kinds of refresh:

- full crawl: no update record exists yet; every listing page and every item
  is fetched and upserted.
- incremental crawl: two concurrent crawls scoped to items posted or updated
  since the last sweep (minus a slack window), results summed.
- singular refresh: the record with the oldest ``catalogue_last_updated`` is
  re-fetched on its own; it is deleted when no longer accessible.

Full and incremental sweeps hold ``busy`` for their whole duration; while it
is set, further sweeps and singular refreshes are skipped rather than queued.
Sweep failures propagate to the caller. Singular refresh failures are logged,
written to the error record and reported as ``RefreshOutcome.ERRORED``.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from mod_catalogue.config import Settings
from mod_catalogue.db.meta_store import UpdateStore
from mod_catalogue.db.mod_store import ModStore
from mod_catalogue.models.mod import UpdateData
from mod_catalogue.models.search import ModSortOptions, SearchOptions
from mod_catalogue.services.crawl.fetcher import WorkshopFetcher
from mod_catalogue.services.crawl.mass_requester import MassRequester
from mod_catalogue.services.crawl.pipeline import persist_mod_stream

logger = logging.getLogger(__name__)

# (requester, posted_since, updated_since) -> fetcher
FetcherFactory = Callable[[MassRequester, int, int], WorkshopFetcher]


class RefreshOutcome(str, Enum):
    SKIPPED_BUSY = "skipped_busy"
    EMPTY = "empty"
    DELETED = "deleted"
    UPDATED = "updated"
    ERRORED = "errored"


class UpdateService:
    def __init__(
        self,
        mod_store: ModStore,
        update_store: UpdateStore,
        settings: Optional[Settings] = None,
        *,
        fetcher_factory: Optional[FetcherFactory] = None,
    ) -> None:
        self.mod_store = mod_store
        self.update_store = update_store
        self.settings = settings or Settings()
        self.slack_seconds = self.settings.update_slack_seconds
        self.busy = False
        self._fetcher_factory = fetcher_factory or self._default_fetcher

    # --- Public API ---
    async def perform_update(self) -> Optional[UpdateData]:
        """Run a full or incremental sweep and persist its stats; ``None`` when a sweep is already running."""
        if self.busy:
            logger.info("Update requested while another sweep is running, skipping")
            return None
        self.busy = True
        try:
            last_update = await self.update_store.get_last_update()
            if last_update is None:
                return await self.perform_full_crawl()
            return await self.perform_incremental_crawl(last_update)
        finally:
            self.busy = False

    async def perform_full_crawl(self) -> UpdateData:
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        logger.info("Full catalogue crawl starting")

        async with self._fetcher_factory(self._requester(logging_enabled=True), 0, 0) as fetcher:
            page_count = await fetcher.fetch_page_count()
            logger.info("Fetching mod ids from %d pages", page_count)
            page_stream = await fetcher.fetch_all_pages(page_count)
            pages = await page_stream.collect()
            MassRequester.log_errors(page_stream.errors, "pages")
            ids = [mod_id for page in pages for mod_id in page]

            logger.info("Fetching mod data for %d ids", len(ids))
            mod_stream = await fetcher.fetch_all_mods(ids)
            result = await persist_mod_stream(mod_stream, self.mod_store, started_at=started_at)

        await self.update_store.set_last_update(result)
        self._log_result("Full catalogue crawl", result, t0)
        return result

    async def perform_incremental_crawl(self, last_update: UpdateData) -> UpdateData:
        since = int(last_update.timestamp.timestamp()) - int(self.slack_seconds)
        t0 = time.monotonic()
        logger.info("Incremental crawl starting (since %d)", since)

        posted, updated = await asyncio.gather(
            self._scoped_crawl("posted", posted_since=since),
            self._scoped_crawl("updated", updated_since=since),
        )
        result = posted + updated

        await self.update_store.set_last_update(result)
        self._log_result("Incremental crawl", result, t0)
        return result

    async def perform_update_singular(self) -> RefreshOutcome:
        """Re-fetch the record that has gone longest without a refresh."""
        if self.busy:
            return RefreshOutcome.SKIPPED_BUSY

        mod_id = None
        try:
            oldest = await self.mod_store.search(
                SearchOptions(sort_by=ModSortOptions.CATALOGUE_LAST_UPDATED, sort_direction=1, per_page=1)
            )
            if not oldest.items:
                return RefreshOutcome.EMPTY
            mod_id = oldest.items[0].id

            requester = self._requester()
            async with self._fetcher_factory(requester, 0, 0) as fetcher:
                mod, errors = await requester.run_one(fetcher.fetch_mod, mod_id, mod_id, None)

            if errors:
                message = "; ".join(err.message for err in errors)
                logger.warning("Singular refresh of %s failed: %s", mod_id, message)
                await self.update_store.log_error(f"singular_refresh:{mod_id}", message)
                return RefreshOutcome.ERRORED

            if mod is None:
                logger.info("Mod %s is no longer accessible, removing it", mod_id)
                await self.mod_store.delete(mod_id)
                return RefreshOutcome.DELETED

            await self.mod_store.upsert([mod])
            logger.debug("Refreshed mod %s", mod_id)
            return RefreshOutcome.UPDATED
        except Exception as exc:
            logger.exception("Singular refresh failed")
            try:
                await self.update_store.log_error(
                    f"singular_refresh:{mod_id or '?'}", f"{type(exc).__name__}: {exc}"
                )
            except Exception:
                logger.exception("Could not record singular refresh failure")
            return RefreshOutcome.ERRORED

    async def needs_startup_update(self, now: Optional[datetime] = None) -> bool:
        last_update = await self.update_store.get_last_update()
        if last_update is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - last_update.timestamp >= timedelta(hours=self.settings.update_interval_hours)

    # --- Internals ---
    async def _scoped_crawl(self, label: str, *, posted_since: int = 0, updated_since: int = 0) -> UpdateData:
        started_at = datetime.now(timezone.utc)
        requester = self._requester()
        async with self._fetcher_factory(requester, posted_since, updated_since) as fetcher:
            stream = await fetcher.fetch_all_mods()
            result = await persist_mod_stream(stream, self.mod_store, started_at=started_at)
        logger.info(
            "Background refresh for %s mods done (inserted=%d updated=%d errored=%d skipped=%d)",
            label, result.num_inserted, result.num_updated, result.num_errored, result.num_skipped,
        )
        return result

    def _requester(self, **overrides) -> MassRequester:
        s = self.settings
        kwargs = dict(
            chunk_size=s.fetch_chunk_size,
            max_attempts=s.fetch_max_attempts,
            retry_cooldown=s.fetch_retry_cooldown,
            chunk_delay=s.fetch_chunk_delay,
        )
        kwargs.update(overrides)
        return MassRequester(**kwargs)

    def _default_fetcher(self, requester: MassRequester, posted_since: int, updated_since: int) -> WorkshopFetcher:
        return WorkshopFetcher(
            requester,
            posted_since=posted_since,
            updated_since=updated_since,
            timeout=self.settings.fetch_timeout,
        )

    @staticmethod
    def _log_result(title: str, result: UpdateData, t0: float) -> None:
        logger.info(
            "%s finished in %ds (inserted=%d updated=%d errored=%d skipped=%d)",
            title,
            int(time.monotonic() - t0),
            result.num_inserted,
            result.num_updated,
            result.num_errored,
            result.num_skipped,
        )
