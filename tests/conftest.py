from datetime import datetime, timedelta, timezone

import pytest

from mod_catalogue.models.mod import Mod

BASE_TIME = datetime(2023, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_mod():
    def _make(mod_id, **overrides):
        data = dict(
            id=mod_id,
            title=f"Mod {mod_id}",
            description="",
            posted=BASE_TIME,
            catalogue_last_updated=BASE_TIME + timedelta(hours=int(mod_id) if mod_id.isdigit() else 0),
        )
        data.update(overrides)
        return Mod(**data)

    return _make
