"""Search options and the filter/sort semantics shared by every ModStore.

Bitmask rules:
- Exclude masks are always applied: every excluded bit must be clear.
- Include masks are chained per the caller's choice: AND requires every
  included bit to be set, OR requires any one of them.
- Exclusion wins over inclusion, e.g. include=ROYALTY|BIOTECH with
  exclude=BIOTECH returns mods needing Royalty but not Biotech.

``build_mongo_filter`` / ``build_mongo_sort`` express these rules as MongoDB
query documents; ``matches`` / ``sort_key_fields`` evaluate the same rules in
Python for the in-memory store.
"""
from __future__ import annotations

import re
from enum import IntEnum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from .mod import Mod


class ModSortOptions(IntEnum):
    ID = 0
    STAR_RATING = 1  # falls back to TOTAL_DOWNLOADS for equal ratings
    TOTAL_VIEWS = 2
    TOTAL_DOWNLOADS = 3
    TOTAL_FAVOURITES = 4
    FILE_SIZE = 5
    DATE_UPLOADED = 6
    LAST_UPDATED = 7  # falls back to DATE_UPLOADED for mods without updates
    CATALOGUE_LAST_UPDATED = 8


class SearchChain(IntEnum):
    AND = 0
    OR = 1


_SORT_FIELDS: Dict[ModSortOptions, Tuple[str, ...]] = {
    ModSortOptions.ID: ("_id",),
    ModSortOptions.STAR_RATING: ("rating_stars", "stats_subscribers"),
    ModSortOptions.TOTAL_VIEWS: ("stats_visitors",),
    ModSortOptions.TOTAL_DOWNLOADS: ("stats_subscribers",),
    ModSortOptions.TOTAL_FAVOURITES: ("stats_favourites",),
    ModSortOptions.FILE_SIZE: ("size",),
    ModSortOptions.DATE_UPLOADED: ("posted",),
    ModSortOptions.LAST_UPDATED: ("updated", "posted"),
    ModSortOptions.CATALOGUE_LAST_UPDATED: ("catalogue_last_updated",),
}


class SearchOptions(BaseModel):
    page: int = Field(0, ge=0, description="Page number, starts at 0")
    per_page: int = Field(20, ge=1, le=100)
    sort_by: ModSortOptions = ModSortOptions.ID
    sort_direction: Literal[1, -1] = 1
    tags_include: int = Field(0, ge=0)
    tags_exclude: int = Field(0, ge=0)
    tags_include_chain: SearchChain = SearchChain.AND
    dlcs_include: int = Field(0, ge=0)
    dlcs_exclude: int = Field(0, ge=0)
    dlcs_include_chain: SearchChain = SearchChain.AND
    search: Optional[str] = Field(
        None, description="Case-insensitive text search; results are ordered by relevance first"
    )
    dependants_of: Optional[str] = Field(None, description="Only mods that list this id as a dependency")


# --- MongoDB ---

def _bitmask_condition(include: int, exclude: int, chain: SearchChain) -> Dict[str, int]:
    cond: Dict[str, int] = {"$bitsAllClear": int(exclude)}
    if include:
        if chain == SearchChain.AND:
            cond["$bitsAllSet"] = int(include)
        else:
            cond["$bitsAnySet"] = int(include)
    return cond


def build_mongo_filter(options: SearchOptions) -> Dict[str, Any]:
    flt: Dict[str, Any] = {
        "tags": _bitmask_condition(options.tags_include, options.tags_exclude, options.tags_include_chain),
        "dlcs": _bitmask_condition(options.dlcs_include, options.dlcs_exclude, options.dlcs_include_chain),
    }
    if options.search is not None:
        flt["$text"] = {"$search": options.search}
    if options.dependants_of is not None:
        flt["dependency_ids"] = {"$elemMatch": {"$eq": options.dependants_of}}
    return flt


def build_mongo_sort(options: SearchOptions) -> List[Tuple[str, Any]]:
    sort: List[Tuple[str, Any]] = []
    if options.search is not None:
        sort.append(("score", {"$meta": "textScore"}))
    for field in _SORT_FIELDS[options.sort_by]:
        sort.append((field, options.sort_direction))
    if options.sort_by != ModSortOptions.ID:
        sort.append(("_id", 1))
    return sort


# --- In-process evaluation ---

def bits_match(value: int, include: int, exclude: int, chain: SearchChain) -> bool:
    if value & exclude:
        return False
    if not include:
        return True
    if chain == SearchChain.AND:
        return value & include == include
    return bool(value & include)


def _words(text: str) -> List[str]:
    return re.findall(r"\w+", (text or "").lower())


def text_score(mod: Mod, query: str) -> int:
    """Number of query terms found in title or description; 0 means no match."""
    haystack = set(_words(mod.title)) | set(_words(mod.description))
    return sum(1 for term in set(_words(query)) if term in haystack)


def matches(mod: Mod, options: SearchOptions) -> bool:
    if not bits_match(int(mod.tags), options.tags_include, options.tags_exclude, options.tags_include_chain):
        return False
    if not bits_match(int(mod.dlcs), options.dlcs_include, options.dlcs_exclude, options.dlcs_include_chain):
        return False
    if options.dependants_of is not None and options.dependants_of not in mod.dependency_ids:
        return False
    if options.search is not None and text_score(mod, options.search) == 0:
        return False
    return True


def sort_key_fields(options: SearchOptions) -> List[Tuple[str, int]]:
    """(document field, direction) pairs in priority order, excluding text relevance."""
    keys = [(field, int(options.sort_direction)) for field in _SORT_FIELDS[options.sort_by]]
    if options.sort_by != ModSortOptions.ID:
        keys.append(("_id", 1))
    return keys
