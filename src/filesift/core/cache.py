# src/filesift/core/cache.py
import logging
import threading
from typing import Dict, Tuple

from filesift.models import FileRecord, IgnoreFilterCacheEntry

logger = logging.getLogger(__name__)

IgnoreCacheKey = Tuple[str, str, Tuple[str, ...]]


class EngineCaches:
    """
    The three caches owned by one engine instance.

    - ignore_filters: (root key, mode, sorted patterns) -> IgnoreFilterCacheEntry
    - file_types:     lowercase extension -> is binary
    - file_metadata:  normalized absolute path -> FileRecord

    `clear()` is the only invalidation path besides per-file maintenance.
    """

    def __init__(self):
        self.ignore_filters: Dict[IgnoreCacheKey, IgnoreFilterCacheEntry] = {}
        self.file_types: Dict[str, bool] = {}
        self.file_metadata: Dict[str, FileRecord] = {}
        # Filter resolution runs in a worker thread.
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self.ignore_filters.clear()
            self.file_types.clear()
            self.file_metadata.clear()
        logger.info("Cleared ignore-filter, file-type and file-metadata caches")

    def clear_ignore_filters(self) -> None:
        with self._lock:
            self.ignore_filters.clear()
        logger.info("Cleared ignore-filter cache")

    def get_filter(self, key: IgnoreCacheKey):
        with self._lock:
            return self.ignore_filters.get(key)

    def put_filter(self, key: IgnoreCacheKey, entry: IgnoreFilterCacheEntry) -> IgnoreFilterCacheEntry:
        """Stores the entry unless another one won the race; returns the stored one."""
        with self._lock:
            return self.ignore_filters.setdefault(key, entry)
