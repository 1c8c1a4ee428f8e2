import threading
from collections import OrderedDict
from typing import Optional

from hdrtmo.features.density.logic import ConditionalDensity
from hdrtmo.kernel.caching.logic import CacheEntry


class DensityCache:
    """
    Holds conditional densities of recently processed frames so that
    re-tuning curve parameters skips the statistics pass. Densities are
    immutable, so one entry may be handed to concurrent jobs.
    """

    def __init__(self, capacity: int = 4) -> None:
        self.capacity = capacity
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, source_hash: str, config_hash: str) -> Optional[ConditionalDensity]:
        with self._lock:
            entry = self._entries.get(source_hash)
            if entry is None or entry.config_hash != config_hash:
                return None
            self._entries.move_to_end(source_hash)
            return entry.data

    def put(self, source_hash: str, config_hash: str, density: ConditionalDensity) -> None:
        with self._lock:
            self._entries[source_hash] = CacheEntry(config_hash, density)
            self._entries.move_to_end(source_hash)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
