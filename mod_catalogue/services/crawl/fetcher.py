"""Steam Workshop crawler.

Lifecycle:
1. Instantiate, optionally scoped with ``posted_since`` or ``updated_since``
   (unix seconds). The workshop ANDs the two filters together, so only one
   of them may be set per fetcher; run two fetchers to cover both.
2. ``fetch_page_count()`` reads the listing's page count from page 1.
3. ``fetch_all_pages()`` streams the mod ids found on every listing page.
4. ``fetch_all_mods()`` streams the parsed Mod for every id (``None`` for
   items that are not publicly visible).

Example::

    async with WorkshopFetcher(MassRequester(logging_enabled=True)) as fetcher:
        stream = await fetcher.fetch_all_mods()
        async for mods in stream:
            ...
        MassRequester.log_errors(stream.errors, "mods")
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import httpx

from mod_catalogue.constants import WORKSHOP_BROWSE_PARAMS, WORKSHOP_BROWSE_URL, WORKSHOP_ITEM_URL
from mod_catalogue.models.mod import Mod

from .mass_requester import ChunkStream, MassRequester
from .parser import WorkshopParser

logger = logging.getLogger(__name__)


class WorkshopFetcher:
    name = "steam_workshop"

    def __init__(
        self,
        requester: Optional[MassRequester] = None,
        *,
        posted_since: int = 0,
        updated_since: int = 0,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if posted_since and updated_since:
            raise ValueError("posted_since and updated_since are ANDed by the workshop; set only one per fetcher")
        self.requester = requester or MassRequester()
        self.params: Dict[str, object] = {
            **WORKSHOP_BROWSE_PARAMS,
            "created_date_range_filter_start": int(posted_since),
            "updated_date_range_filter_start": int(updated_since),
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers=headers or {"User-Agent": "ModCatalogue-Crawler/0.1"},
            follow_redirects=True,
        )

    async def __aenter__(self) -> "WorkshopFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Public API ---
    async def fetch_page_count(self) -> int:
        html = await self._get(WORKSHOP_BROWSE_URL, {**self.params, "p": 1})
        return WorkshopParser.parse_page_count(html)

    async def fetch_all_pages(self, page_count: Optional[int] = None) -> ChunkStream[List[str]]:
        """Stream the mod ids of listing pages 1..page_count, one list per page.

        Pages that keep failing yield an empty list and are reported by page number.
        """
        if page_count is None:
            page_count = await self.fetch_page_count()
        return self.requester.stream(self.fetch_page, range(1, page_count + 1), str, [])

    async def fetch_all_mods(self, ids: Optional[Sequence[str]] = None) -> ChunkStream[Optional[Mod]]:
        """Stream parsed mods for ``ids``, or for every id on every listing page when omitted."""
        if ids is None:
            # collecting all ids up front keeps this a single stream, at the cost of holding them in memory
            page_stream = await self.fetch_all_pages()
            pages = await page_stream.collect()
            MassRequester.log_errors(page_stream.errors, "pages")
            ids = [mod_id for page in pages for mod_id in page]
        return self.requester.stream(self.fetch_mod, list(ids), str, None)

    async def fetch_page(self, page_number: int) -> List[str]:
        html = await self._get(WORKSHOP_BROWSE_URL, {**self.params, "p": page_number})
        return WorkshopParser.parse_page_ids(html)

    async def fetch_mod(self, mod_id: str) -> Optional[Mod]:
        """Fetch and parse one item; ``None`` when the item is not publicly visible."""
        html = await self._get(WORKSHOP_ITEM_URL, {"id": mod_id})
        parser = WorkshopParser(html)
        if parser.is_inaccessible:
            logger.debug("Mod %s is inaccessible", mod_id)
            return None
        return parser.to_mod(mod_id)

    # --- Internals ---
    async def _get(self, url: str, params: Dict[str, object]) -> str:
        resp = await self._client.get(url, params=params)
        resp.raise_for_status()
        return resp.text
