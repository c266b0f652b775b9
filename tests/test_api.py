from datetime import datetime, timezone

from fastapi.testclient import TestClient

from mod_catalogue.config import Settings
from mod_catalogue.db.memory_store import MemoryModStore, MemoryUpdateStore
from mod_catalogue.main import create_app
from mod_catalogue.models.mod import ModTags, UpdateData


def _client(make_mod, last_update=None):
    mods = MemoryModStore(
        [
            make_mod("1", title="Medieval Armour", tags=int(ModTags.APPAREL)),
            make_mod("2", title="Laser Guns", tags=int(ModTags.WEAPONS), stats_subscribers=500),
            make_mod("3", title="Hats", tags=int(ModTags.APPAREL), dependency_ids=["1"]),
        ]
    )
    app = create_app(
        Settings(commit="abc123"),
        mod_store=mods,
        update_store=MemoryUpdateStore(last_update),
        enable_scheduler=False,
    )
    return TestClient(app)


def test_root_status(make_mod):
    last = UpdateData(timestamp=datetime(2023, 5, 1, tzinfo=timezone.utc), num_inserted=3)
    with _client(make_mod, last) as client:
        resp = client.post("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["commit"] == "abc123"
    assert data["estimated_mod_count"] == 3
    assert data["last_update"]["num_inserted"] == 3
    assert "received_request" in data and "start_time" in data


def test_search_mods(make_mod):
    with _client(make_mod) as client:
        resp = client.get("/mods", params={"tags_include": int(ModTags.APPAREL)})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_item_count"] == 2
        assert [m["_id"] for m in data["items"]] == ["1", "3"]

        resp = client.get("/mods", params={"sort_by": 3, "sort_direction": -1, "per_page": 1})
        assert [m["_id"] for m in resp.json()["items"]] == ["2"]

        resp = client.get("/mods", params={"dependants_of": "1"})
        assert [m["_id"] for m in resp.json()["items"]] == ["3"]


def test_search_validation(make_mod):
    with _client(make_mod) as client:
        assert client.get("/mods", params={"per_page": 0}).status_code == 422
        assert client.get("/mods", params={"sort_direction": 2}).status_code == 422
        assert client.get("/mods", params={"sort_by": 99}).status_code == 422


def test_get_mod(make_mod):
    with _client(make_mod) as client:
        resp = client.get("/mods/2")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Laser Guns"
        missing = client.get("/mods/404")
        assert missing.status_code == 404
