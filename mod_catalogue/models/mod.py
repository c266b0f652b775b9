from __future__ import annotations

from datetime import datetime
from enum import IntFlag
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModTags(IntFlag):
    """Content tags inferred from a mod's description (see ``WorkshopParser.tags``)."""

    NONE = 0
    APPAREL = 1 << 0
    BUILDINGS = 1 << 1
    FURNITURE = 1 << 2
    WEAPONS = 1 << 3  # includes tools
    ANIMALS = 1 << 4
    FACTIONS = 1 << 5
    FOOD = 1 << 6
    MEDICAL = 1 << 7
    TEXTURES = 1 << 8
    TERRAIN = 1 << 9  # includes world generation
    RACES = 1 << 10
    VEHICLES = 1 << 11
    MUSIC = 1 << 12
    TRAITS = 1 << 13  # includes backstories
    EVENTS = 1 << 14
    XENOTYPES = 1 << 15  # includes genes
    UI = 1 << 16


class ModDLCs(IntFlag):
    NONE = 0
    ROYALTY = 1 << 0
    IDEOLOGY = 1 << 1
    BIOTECH = 1 << 2


class ModAuthor(BaseModel):
    name: str
    url: str = ""
    avatar: str = ""


class Mod(BaseModel):
    """A catalogued workshop item.

    ``id`` is stored as the document key (``_id``). ``updated`` is omitted from
    the stored document when the workshop never showed an update date, and
    ``catalogue_last_updated`` is stamped by us on every successful fetch.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Workshop file id")
    title: str
    description: str = ""
    thumbnail: str = ""
    rating_stars: int = Field(0, ge=0, le=5)
    rating_count: int = 0
    authors: List[ModAuthor] = Field(default_factory=list)
    tags: int = ModTags.NONE
    dlcs: int = ModDLCs.NONE
    size: float = Field(0.0, description="Size in megabytes")
    posted: datetime
    updated: Optional[datetime] = None
    catalogue_last_updated: datetime
    stats_visitors: int = 0
    stats_subscribers: int = 0
    stats_favourites: int = 0
    dependency_ids: List[str] = Field(default_factory=list)
    dependency_names: List[str] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        if doc.get("updated") is None:
            doc.pop("updated", None)
        doc["tags"] = int(self.tags)
        doc["dlcs"] = int(self.dlcs)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Mod":
        data = dict(doc)
        data.pop("score", None)
        return cls.model_validate(data)


class UpdateData(BaseModel):
    """Stats of the last completed full or incremental sweep.

    ``num_errored`` counts units that failed every fetch attempt.
    ``num_skipped`` counts only items the workshop reported as inaccessible;
    errored units are not included in it.
    """

    timestamp: datetime
    num_inserted: int = 0
    num_updated: int = 0
    num_errored: int = 0
    num_skipped: int = 0

    def __add__(self, other: "UpdateData") -> "UpdateData":
        # the earlier start time wins so the next incremental sweep leaves no gap
        return UpdateData(
            timestamp=min(self.timestamp, other.timestamp),
            num_inserted=self.num_inserted + other.num_inserted,
            num_updated=self.num_updated + other.num_updated,
            num_errored=self.num_errored + other.num_errored,
            num_skipped=self.num_skipped + other.num_skipped,
        )


class Page(BaseModel):
    total_item_count: int
    items: List[Mod]


class RootResponse(BaseModel):
    start_time: datetime
    commit: str
    received_request: datetime
    estimated_mod_count: int
    last_update: Optional[UpdateData] = None
