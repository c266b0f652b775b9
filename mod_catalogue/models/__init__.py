from .mod import Mod, ModAuthor, ModDLCs, ModTags, Page, RootResponse, UpdateData
from .search import ModSortOptions, SearchChain, SearchOptions

__all__ = [
    "Mod",
    "ModAuthor",
    "ModDLCs",
    "ModTags",
    "Page",
    "RootResponse",
    "UpdateData",
    "ModSortOptions",
    "SearchChain",
    "SearchOptions",
]
