"""Storage backends for salts and sealed records."""
from .abstract import RecordStore, SaltStore
from .memory import MemoryRecordStore, MemorySaltStore

__all__ = [
    "RecordStore",
    "SaltStore",
    "MemoryRecordStore",
    "MemorySaltStore",
]
