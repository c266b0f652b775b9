"""Extract listing ids, page counts and mod records from workshop HTML.

Pages are parsed with selectolax. Tags are inferred from keywords in the
description, DLC requirements from the required-DLC list, and workshop
date strings ("3 Jan, 2023 @ 4:12pm", year optional) become UTC midnights.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from selectolax.parser import HTMLParser, Node

from mod_catalogue.constants import KNOWN_DLCS, TAG_KEYWORDS
from mod_catalogue.models.mod import Mod, ModAuthor, ModDLCs, ModTags

_STAR_RE = re.compile(r"([0-5])-star", re.IGNORECASE)
_TOKEN_RE = re.compile(r"[\w-]+")


def _text(node: Optional[Node]) -> str:
    return node.text(strip=True) if node is not None else ""


def _attr(node: Optional[Node], name: str) -> str:
    if node is None:
        return ""
    return node.attributes.get(name) or ""


def _first_number(text: str) -> str:
    """First whitespace-separated token with thousands separators removed, e.g. '1,234 ratings' -> '1234'."""
    parts = (text or "").replace(",", "").split()
    return parts[0] if parts else ""


def _to_int(text: str) -> int:
    try:
        return int(_first_number(text))
    except ValueError:
        return 0


def _to_float(text: str) -> float:
    try:
        return float(_first_number(text))
    except ValueError:
        return 0.0


def tokenize(text: str) -> set:
    """Lowercase whole-word tokens; hyphenated compounds ('clothings-free') stay one token."""
    return set(_TOKEN_RE.findall((text or "").lower()))


def infer_tags(description: str) -> int:
    words = tokenize(description)
    output = ModTags.NONE
    if not words:
        return output
    for tag, keywords in TAG_KEYWORDS.items():
        if any(kw in words or f"{kw}s" in words for kw in keywords):
            output |= tag
    return output


def parse_workshop_date(text: str, *, now: Optional[datetime] = None) -> datetime:
    """Convert '16 Apr @ 11:10pm' or '19 Jul, 2016 @ 12:05am' to a UTC date.

    The time of day is dropped and the current year is assumed when the
    workshop omits it (it does so for dates in the current year).
    """
    parts = re.sub(r"@.*$", "", text or "").replace(",", " ").split()
    if len(parts) < 2:
        raise ValueError(f"Unrecognised workshop date: {text!r}")
    day, month = parts[0], parts[1]
    year = parts[2] if len(parts) > 2 else str((now or datetime.now(timezone.utc)).year)
    parsed = datetime.strptime(f"{day} {month[:3]} {year}", "%d %b %Y")
    return parsed.replace(tzinfo=timezone.utc)


class WorkshopParser:
    """Extracts Mod fields from a workshop item page.

    Listing pages are handled by the static ``parse_page_ids`` and
    ``parse_page_count`` helpers.
    """

    INACCESSIBLE_SEL = ".error_ctn"

    def __init__(self, html: str) -> None:
        self._doc = HTMLParser(html)
        self._rating_section = self._doc.css_first(".ratingSection")
        self._details = self._doc.css(".detailsStatRight")
        stats_table = self._doc.css_first(".stats_table")
        self._stats = stats_table.css("td") if stats_table is not None else []

    # --- Listing pages ---
    @staticmethod
    def parse_page_ids(html: str) -> List[str]:
        doc = HTMLParser(html)
        ids: List[str] = []
        for item in doc.css(".workshopItem"):
            link = item.css_first("[data-publishedfileid]")
            mod_id = _attr(link, "data-publishedfileid")
            if mod_id:
                ids.append(mod_id)
        return ids

    @staticmethod
    def parse_page_count(html: str) -> int:
        """Highest numeric page link label; 1 for an unpaginated listing with items, 0 when empty."""
        doc = HTMLParser(html)
        labels = [_text(n).replace(",", "") for n in doc.css(".pagelink")]
        numbers = [int(label) for label in labels if label.isdigit()]
        if numbers:
            return max(numbers)
        return 1 if doc.css_first(".workshopItem") is not None else 0

    # --- Item pages ---
    @property
    def is_inaccessible(self) -> bool:
        return self._doc.css_first(self.INACCESSIBLE_SEL) is not None

    @property
    def thumbnail(self) -> str:
        return (
            _attr(self._doc.css_first("#previewImageMain"), "src")
            or _attr(self._doc.css_first("#previewImage"), "src")
        )

    @property
    def title(self) -> str:
        return _text(self._doc.css_first(".workshopItemTitle")) or "No Title"

    @property
    def description(self) -> str:
        node = self._doc.css_first(".workshopItemDescription")
        if node is None:
            return "No description."
        return node.text(separator="\n", strip=True)

    @property
    def rating_stars(self) -> int:
        # e.g. .../sharedfiles/4-star_large.png?v=2, or not-yet_large.png for unrated items
        img = self._rating_section.css_first("img") if self._rating_section is not None else None
        match = _STAR_RE.search(_attr(img, "src"))
        return int(match.group(1)) if match else 0

    @property
    def rating_count(self) -> int:
        if self._rating_section is None:
            return 0
        return _to_int(_text(self._rating_section.css_first(".numRatings")))

    @property
    def authors(self) -> List[ModAuthor]:
        out: List[ModAuthor] = []
        for block in self._doc.css(".friendBlock.persona"):
            # the content block also holds the online status after the name
            node = block.css_first(".friendBlockContent")
            content = node.text(separator=" ", strip=True).split() if node is not None else []
            out.append(
                ModAuthor(
                    name=content[0] if content else "",
                    url=_attr(block.css_first(".friendBlockLinkOverlay"), "href"),
                    avatar=_attr(block.css_first(".playerAvatar img"), "src"),
                )
            )
        return out

    @property
    def tags(self) -> int:
        node = self._doc.css_first(".workshopItemDescription")
        return infer_tags(node.text(separator=" ") if node is not None else "")

    @property
    def dlcs(self) -> int:
        output = ModDLCs.NONE
        for element in self._doc.css(".requiredDLCName"):
            link = element.css_first("a")
            if link is None:
                continue
            text = _text(link).lower()
            for dlc, name in KNOWN_DLCS.items():
                if name in text:
                    output |= dlc
        return output

    @property
    def size(self) -> float:
        return _to_float(self._detail_text(0))

    @property
    def posted(self) -> datetime:
        return parse_workshop_date(self._detail_text(1))

    @property
    def updated(self) -> Optional[datetime]:
        text = self._detail_text(2)
        return parse_workshop_date(text) if text else None

    @property
    def visitors(self) -> int:
        return _to_int(self._stat_text(0))

    @property
    def subscribers(self) -> int:
        return _to_int(self._stat_text(2))

    @property
    def favourites(self) -> int:
        return _to_int(self._stat_text(4))

    @property
    def dependency_ids(self) -> List[str]:
        ids: List[str] = []
        for link in self._doc.css("#RequiredItems a"):
            query = parse_qs(urlparse(_attr(link, "href")).query)
            if query.get("id"):
                ids.append(query["id"][0])
        return ids

    @property
    def dependency_names(self) -> List[str]:
        return [_text(n) for n in self._doc.css("#RequiredItems a .requiredItem")]

    def to_mod(self, mod_id: str, *, now: Optional[datetime] = None) -> Mod:
        return Mod(
            id=mod_id,
            thumbnail=self.thumbnail,
            title=self.title,
            description=self.description,
            rating_stars=self.rating_stars,
            rating_count=self.rating_count,
            authors=self.authors,
            tags=self.tags,
            dlcs=self.dlcs,
            size=self.size,
            posted=self.posted,
            updated=self.updated,
            catalogue_last_updated=now or datetime.now(timezone.utc),
            stats_visitors=self.visitors,
            stats_subscribers=self.subscribers,
            stats_favourites=self.favourites,
            dependency_ids=self.dependency_ids,
            dependency_names=self.dependency_names,
        )

    # --- Internals ---
    def _detail_text(self, index: int) -> str:
        return _text(self._details[index]) if index < len(self._details) else ""

    def _stat_text(self, index: int) -> str:
        return _text(self._stats[index]) if index < len(self._stats) else ""
