import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from mod_catalogue.config import Settings
from mod_catalogue.db.memory_store import MemoryModStore, MemoryUpdateStore
from mod_catalogue.models.mod import UpdateData
from mod_catalogue.services.crawl.mass_requester import MassRequester
from mod_catalogue.services.crawl.pipeline import persist_mod_stream
from mod_catalogue.services.update_service import RefreshOutcome, UpdateService

SETTINGS = Settings(fetch_chunk_size=2, fetch_max_attempts=2, fetch_retry_cooldown=0, fetch_chunk_delay=0)


class _FakeFetcher:
    """Stands in for WorkshopFetcher; items map to a Mod, None (inaccessible) or an exception."""

    def __init__(self, requester, pages, items):
        self.requester = requester
        self.pages = pages
        self.items = items

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def fetch_page_count(self):
        return len(self.pages)

    async def fetch_all_pages(self, page_count=None):
        count = len(self.pages) if page_count is None else page_count
        return self.requester.stream(self.fetch_page, range(1, count + 1), str, [])

    async def fetch_all_mods(self, ids=None):
        if ids is None:
            ids = [mod_id for page in self.pages for mod_id in page]
        return self.requester.stream(self.fetch_mod, list(ids), str, None)

    async def fetch_page(self, page_number):
        return list(self.pages[page_number - 1])

    async def fetch_mod(self, mod_id):
        item = self.items[mod_id]
        if isinstance(item, Exception):
            raise item
        if item is None:
            return None
        return item.model_copy(update={"catalogue_last_updated": datetime.now(timezone.utc)})


class _Factory:
    def __init__(self, pages=(), items=None, scoped=None):
        self.pages = [list(p) for p in pages]
        self.items = items or {}
        # (posted_since > 0, updated_since > 0) -> listing pages for that scope
        self.scoped = scoped or {}
        self.calls = []

    def __call__(self, requester, posted_since, updated_since):
        self.calls.append((posted_since, updated_since))
        pages = self.scoped.get((bool(posted_since), bool(updated_since)), self.pages)
        return _FakeFetcher(requester, pages, self.items)


def _service(factory, mods=(), last_update=None):
    mod_store = MemoryModStore(list(mods))
    update_store = MemoryUpdateStore(last_update)
    return UpdateService(mod_store, update_store, SETTINGS, fetcher_factory=factory), mod_store, update_store


def test_first_update_runs_full_crawl(make_mod):
    factory = _Factory(
        pages=[["1", "2"], ["3"]],
        items={"1": make_mod("1"), "2": None, "3": RuntimeError("boom")},
    )
    service, mod_store, update_store = _service(factory)
    before = datetime.now(timezone.utc)

    result = asyncio.run(service.perform_update())

    assert (result.num_inserted, result.num_updated, result.num_errored, result.num_skipped) == (1, 0, 1, 1)
    assert result.timestamp >= before
    assert factory.calls == [(0, 0)]
    assert asyncio.run(update_store.get_last_update()) == result
    assert asyncio.run(mod_store.find_one("1")) is not None
    assert service.busy is False


def test_incremental_crawl_uses_slack_and_earliest_start(make_mod, monkeypatch):
    last = datetime(2023, 3, 1, tzinfo=timezone.utc)
    factory = _Factory(
        items={"5": make_mod("5"), "1": make_mod("1", title="Changed")},
        scoped={(True, False): [["5"]], (False, True): [["1"]]},
    )
    service, mod_store, update_store = _service(
        factory, mods=[make_mod("1")], last_update=UpdateData(timestamp=last)
    )
    service.slack_seconds = 3600

    scoped_results = []
    original = service._scoped_crawl

    async def recording(label, **kwargs):
        result = await original(label, **kwargs)
        scoped_results.append(result)
        return result

    monkeypatch.setattr(service, "_scoped_crawl", recording)

    result = asyncio.run(service.perform_update())

    since = int(last.timestamp()) - 3600
    assert sorted(factory.calls) == [(0, since), (since, 0)]
    assert (result.num_inserted, result.num_updated) == (1, 1)
    assert len(scoped_results) == 2
    assert result.timestamp == min(r.timestamp for r in scoped_results)
    assert asyncio.run(update_store.get_last_update()) == result
    assert asyncio.run(mod_store.find_one("1")).title == "Changed"


def test_update_is_noop_while_busy():
    factory = _Factory()
    service, _, update_store = _service(factory)
    service.busy = True

    assert asyncio.run(service.perform_update()) is None
    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.SKIPPED_BUSY
    assert factory.calls == []
    assert asyncio.run(update_store.get_last_update()) is None


def test_busy_released_when_sweep_fails():
    class _Broken(_Factory):
        def __call__(self, requester, posted_since, updated_since):
            raise RuntimeError("workshop unreachable")

    service, _, _ = _service(_Broken())
    with pytest.raises(RuntimeError):
        asyncio.run(service.perform_update())
    assert service.busy is False


def test_singular_refresh_on_empty_store():
    service, _, _ = _service(_Factory())
    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.EMPTY


def test_singular_refresh_deletes_inaccessible_record(make_mod):
    factory = _Factory(items={"1": None})
    service, mod_store, _ = _service(factory, mods=[make_mod("1"), make_mod("2")])

    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.DELETED
    assert asyncio.run(mod_store.find_one("1")) is None
    assert asyncio.run(mod_store.find_one("2")) is not None


def test_singular_refresh_moves_timestamp_forward(make_mod):
    stale = make_mod("1")
    factory = _Factory(items={"1": stale})
    service, mod_store, _ = _service(factory, mods=[stale, make_mod("2")])

    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.UPDATED
    refreshed = asyncio.run(mod_store.find_one("1"))
    assert refreshed.catalogue_last_updated > stale.catalogue_last_updated


def test_singular_refresh_records_fetch_errors(make_mod):
    factory = _Factory(items={"1": RuntimeError("gateway exploded")})
    service, mod_store, update_store = _service(factory, mods=[make_mod("1")])

    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.ERRORED
    assert asyncio.run(mod_store.find_one("1")) is not None
    assert len(update_store.errors) == 1
    assert update_store.errors[0]["context"] == "singular_refresh:1"
    assert "gateway exploded" in update_store.errors[0]["message"]


def test_singular_refresh_swallows_unexpected_errors(make_mod):
    class _BrokenStore(MemoryModStore):
        async def search(self, options):
            raise ConnectionError("store offline")

    update_store = MemoryUpdateStore()
    service = UpdateService(_BrokenStore(), update_store, SETTINGS, fetcher_factory=_Factory())

    assert asyncio.run(service.perform_update_singular()) == RefreshOutcome.ERRORED
    assert update_store.errors[0]["message"] == "ConnectionError: store offline"


def test_needs_startup_update():
    now = datetime(2023, 6, 1, 12, tzinfo=timezone.utc)
    fresh = UpdateData(timestamp=now - timedelta(hours=1))
    stale = UpdateData(timestamp=now - timedelta(hours=SETTINGS.update_interval_hours))

    assert asyncio.run(_service(_Factory())[0].needs_startup_update(now)) is True
    assert asyncio.run(_service(_Factory(), last_update=fresh)[0].needs_startup_update(now)) is False
    assert asyncio.run(_service(_Factory(), last_update=stale)[0].needs_startup_update(now)) is True


def test_cancelled_persist_stops_the_producer(make_mod):
    fetched = []

    async def slow_fetch(mod_id):
        fetched.append(mod_id)
        await asyncio.sleep(0.01)
        return make_mod(mod_id)

    async def run():
        requester = MassRequester(chunk_size=1, retry_cooldown=0, chunk_delay=0)
        stream = requester.stream(slow_fetch, [str(n) for n in range(1, 51)], str, None)
        persist = asyncio.create_task(
            persist_mod_stream(stream, MemoryModStore(), started_at=datetime.now(timezone.utc))
        )
        await asyncio.sleep(0.03)
        persist.cancel()
        with pytest.raises(asyncio.CancelledError):
            await persist
        return stream

    stream = asyncio.run(run())
    assert stream._task.cancelled()
    assert len(fetched) < 50


def test_persist_counts_errored_units_apart_from_skipped(make_mod):
    items = {"1": make_mod("1"), "2": None}

    async def fetch(mod_id):
        if mod_id == "3":
            raise RuntimeError("boom")
        return items[mod_id]

    async def run():
        requester = MassRequester(chunk_size=2, max_attempts=1, retry_cooldown=0, chunk_delay=0)
        stream = requester.stream(fetch, ["1", "2", "3"], str, None)
        return await persist_mod_stream(stream, MemoryModStore(), started_at=datetime.now(timezone.utc))

    result = asyncio.run(run())
    assert (result.num_inserted, result.num_errored, result.num_skipped) == (1, 1, 1)
