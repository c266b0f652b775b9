from .memory_store import MemoryModStore, MemoryUpdateStore
from .meta_store import MongoUpdateStore, UpdateStore
from .mod_store import ModStore, MongoModStore

__all__ = [
    "MemoryModStore",
    "MemoryUpdateStore",
    "ModStore",
    "MongoModStore",
    "MongoUpdateStore",
    "UpdateStore",
]
