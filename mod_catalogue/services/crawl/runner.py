from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Optional, Tuple

from mod_catalogue.config import Settings, load_settings
from mod_catalogue.db.memory_store import MemoryModStore, MemoryUpdateStore
from mod_catalogue.db.meta_store import MongoUpdateStore, UpdateStore
from mod_catalogue.db.mod_store import ModStore, MongoModStore
from mod_catalogue.db.mongo_connector import close_client, get_database
from mod_catalogue.services.update_service import UpdateService

from .fetcher import WorkshopFetcher
from .mass_requester import MassRequester


def _requester(settings: Settings) -> MassRequester:
    return MassRequester(
        chunk_size=settings.fetch_chunk_size,
        max_attempts=settings.fetch_max_attempts,
        retry_cooldown=settings.fetch_retry_cooldown,
        chunk_delay=settings.fetch_chunk_delay,
        logging_enabled=True,
    )


async def run_page_count(settings: Settings) -> int:
    async with WorkshopFetcher(_requester(settings), timeout=settings.fetch_timeout) as fetcher:
        return await fetcher.fetch_page_count()


async def run_mod(settings: Settings, mod_id: str) -> Optional[dict]:
    async with WorkshopFetcher(_requester(settings), timeout=settings.fetch_timeout) as fetcher:
        mod = await fetcher.fetch_mod(mod_id)
    return mod.model_dump(mode="json", by_alias=True) if mod is not None else None


async def run_ids(settings: Settings) -> list:
    async with WorkshopFetcher(_requester(settings), timeout=settings.fetch_timeout) as fetcher:
        stream = await fetcher.fetch_all_pages()
        pages = await stream.collect()
    MassRequester.log_errors(stream.errors, "pages")
    return [mod_id for page in pages for mod_id in page]


async def _open_stores(settings: Settings, memory: bool) -> Tuple[ModStore, UpdateStore]:
    if memory:
        return MemoryModStore(), MemoryUpdateStore()
    db = get_database(settings)
    mods, meta = MongoModStore(db), MongoUpdateStore(db)
    await mods.ensure_indexes()
    await meta.ensure_indexes()
    return mods, meta


async def run_service(settings: Settings, cmd: str, *, memory: bool) -> str:
    mod_store, update_store = await _open_stores(settings, memory)
    try:
        service = UpdateService(mod_store, update_store, settings)
        if cmd == "update":
            result = await service.perform_update()
            return result.model_dump_json() if result is not None else "skipped"
        outcome = await service.perform_update_singular()
        return outcome.value
    finally:
        if not memory:
            await close_client()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Run workshop crawl tasks by hand")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("pages", help="Print the number of listing pages")
    mod = sub.add_parser("mod", help="Fetch one item and print it as JSON")
    mod.add_argument("mod_id", help="Workshop file id")
    sub.add_parser("ids", help="Print every mod id on every listing page")
    for name, text in (("update", "Run one full or incremental sweep"), ("refresh", "Run one singular refresh")):
        p = sub.add_parser(name, help=text)
        p.add_argument("--memory", action="store_true", help="Use in-memory stores instead of MongoDB")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()

    if args.cmd == "pages":
        print(asyncio.run(run_page_count(settings)))
        return 0

    if args.cmd == "mod":
        data = asyncio.run(run_mod(settings, args.mod_id))
        if data is None:
            print(f"Mod {args.mod_id} is not accessible")
            return 1
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return 0

    if args.cmd == "ids":
        for mod_id in asyncio.run(run_ids(settings)):
            print(mod_id)
        return 0

    if args.cmd in ("update", "refresh"):
        print(asyncio.run(run_service(settings, args.cmd, memory=args.memory)))
        return 0

    parser.error("unknown command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
