import os
from datetime import datetime, timezone

import pytest

from mod_catalogue.models.mod import ModDLCs, ModTags
from mod_catalogue.services.crawl.parser import (
    WorkshopParser,
    infer_tags,
    parse_workshop_date,
    tokenize,
)

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


def _fixture(name):
    with open(os.path.join(FIXTURES, name), "r", encoding="utf-8") as f:
        return f.read()


def test_listing_page_count_and_ids():
    html = _fixture("workshop_page.html")
    assert WorkshopParser.parse_page_count(html) == 7
    assert WorkshopParser.parse_page_ids(html) == ["2009463077", "818773962", "1874644848"]


def test_page_count_without_pagination():
    single = '<div class="workshopItem"><a data-publishedfileid="1"></a></div>'
    assert WorkshopParser.parse_page_count(single) == 1
    assert WorkshopParser.parse_page_count("<div>No items matching your search criteria</div>") == 0


def test_page_count_ignores_non_numeric_links_and_separators():
    html = (
        '<a class="pagelink">1</a><span>...</span>'
        '<a class="pagelink">1,204</a><a class="pagelink">next</a>'
    )
    assert WorkshopParser.parse_page_count(html) == 1204


def test_item_page_fields():
    parser = WorkshopParser(_fixture("workshop_item.html"))
    assert parser.is_inaccessible is False
    assert parser.title == "Vanilla Apparel Expanded"
    assert parser.thumbnail == "https://steamuserimages-a.akamaihd.net/ugc/main.png"
    assert parser.rating_stars == 4
    assert parser.rating_count == 1234
    assert parser.size == pytest.approx(4.213)
    assert parser.posted == datetime(2016, 7, 19, tzinfo=timezone.utc)
    assert parser.updated == datetime(2023, 4, 16, tzinfo=timezone.utc)
    assert parser.visitors == 48392
    assert parser.subscribers == 12345
    assert parser.favourites == 2001
    assert parser.dependency_ids == ["2009463077", "2023507013"]
    assert parser.dependency_names == ["Harmony", "Vanilla Expanded Framework"]
    assert "clothing" in parser.description


def test_item_page_authors():
    authors = WorkshopParser(_fixture("workshop_item.html")).authors
    assert [a.name for a in authors] == ["OskarPotocki", "Sarg"]
    assert authors[0].url == "https://steamcommunity.com/id/oskarpotocki"
    assert authors[1].avatar == "https://avatars.example.com/sarg.jpg"


def test_item_page_tags_and_dlcs():
    parser = WorkshopParser(_fixture("workshop_item.html"))
    assert parser.tags == ModTags.APPAREL | ModTags.TEXTURES
    assert parser.dlcs == ModDLCs.ROYALTY | ModDLCs.BIOTECH


def test_item_without_update_marker():
    parser = WorkshopParser(_fixture("workshop_item_no_update.html"))
    now = datetime.now(timezone.utc)
    mod = parser.to_mod("42", now=now)

    assert mod.updated is None
    assert "updated" not in mod.to_document()
    assert mod.posted == datetime(now.year, 2, 3, tzinfo=timezone.utc)
    assert mod.thumbnail == "https://steamuserimages-a.akamaihd.net/ugc/small.png"
    assert mod.rating_stars == 0
    assert mod.rating_count == 0
    assert mod.tags == ModTags.NONE
    assert mod.dlcs == ModDLCs.NONE
    assert mod.authors == []
    assert mod.catalogue_last_updated == now


def test_inaccessible_item():
    assert WorkshopParser(_fixture("workshop_item_inaccessible.html")).is_inaccessible is True


def test_missing_title_and_description_defaults():
    parser = WorkshopParser("<html><body></body></html>")
    assert parser.title == "No Title"
    assert parser.description == "No description."


def test_tag_inference_matches_whole_tokens():
    assert infer_tags("New clothing for colonists") & ModTags.APPAREL
    assert infer_tags("Adds guns and trucks") == ModTags.WEAPONS | ModTags.VEHICLES
    assert not infer_tags("clothings-free") & ModTags.APPAREL
    assert infer_tags("") == ModTags.NONE
    # substrings of longer words do not count
    assert not infer_tags("a caravan of cartographers") & ModTags.VEHICLES


def test_tokenize_lowercases_and_keeps_hyphenated_words():
    assert tokenize("Better UI, anti-lag HUD") == {"better", "ui", "anti-lag", "hud"}


def test_parse_workshop_date_formats():
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert parse_workshop_date("19 Jul, 2016 @ 12:05am", now=now) == datetime(2016, 7, 19, tzinfo=timezone.utc)
    assert parse_workshop_date("16 Apr @ 11:10pm", now=now) == datetime(2024, 4, 16, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        parse_workshop_date("", now=now)
