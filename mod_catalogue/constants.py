from typing import Dict, Tuple

from mod_catalogue.models.mod import ModDLCs, ModTags

WORKSHOP_BROWSE_URL = "https://steamcommunity.com/workshop/browse"
WORKSHOP_ITEM_URL = "https://steamcommunity.com/sharedfiles/filedetails"

# RimWorld mods tagged for 1.4, ordered the same way the workshop's "trend" view lists them.
WORKSHOP_BROWSE_PARAMS: Dict[str, object] = {
    "appid": 294100,
    "section": "readytouseitems",
    "requiredtags[0]": "Mod",
    "requiredtags[1]": "1.4",
    "created_date_range_filter_end": 0,
    "updated_date_range_filter_end": 0,
    "actualsort": "trend",
    "days": -1,
}

# Whole-token keywords; the parser also accepts each keyword with a trailing "s".
TAG_KEYWORDS: Dict[ModTags, Tuple[str, ...]] = {
    ModTags.APPAREL: ("apparel", "clothing", "armor", "armour", "clothes"),
    ModTags.BUILDINGS: ("building", "structure"),
    ModTags.FURNITURE: ("furniture", "furnishing"),
    ModTags.WEAPONS: ("weapon", "gun", "tool"),
    ModTags.ANIMALS: ("animal", "creature", "pet", "wildlife"),
    ModTags.FACTIONS: ("faction", "tribe", "clan"),
    ModTags.FOOD: ("food", "meal"),
    ModTags.MEDICAL: ("medic", "medical", "drug", "pharmaceutical"),
    ModTags.TEXTURES: ("texture",),
    ModTags.TERRAIN: ("terrain", "biome", "landscape", "landscaping", "generation", "tile"),
    ModTags.RACES: ("race", "species"),
    ModTags.VEHICLES: (
        "vehicle", "car", "truck", "boat", "ship", "aircraft",
        "plane", "helicopter", "tank", "aeroplane", "airplane",
    ),
    ModTags.MUSIC: ("music", "song", "soundtrack", "tune"),
    ModTags.TRAITS: ("trait", "backstory", "backstories"),
    ModTags.EVENTS: ("event",),
    ModTags.XENOTYPES: ("xenotype", "gene"),
    ModTags.UI: ("ui", "hud", "interface"),
}

# Lowercase substrings looked for in the "required DLC" links of an item page.
KNOWN_DLCS: Dict[ModDLCs, str] = {
    ModDLCs.ROYALTY: "royalty",
    ModDLCs.IDEOLOGY: "ideology",
    ModDLCs.BIOTECH: "biotech",
}

MAX_MONGO_DB_NAME_LENGTH = 38
