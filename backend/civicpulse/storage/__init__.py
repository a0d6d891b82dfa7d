"""
Persistence layer: whole-collection JSON snapshots written by debounced
background flushers.
"""

from .json_store import JsonFileStorage
from .flusher import DebouncedFlusher

__all__ = [
    "JsonFileStorage",
    "DebouncedFlusher",
]
