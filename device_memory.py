"""
Time-bounded memory of recently seen fingerprints.

Decides whether a sighting is new enough to record. The horizon slides:
every sighting, recorded or suppressed, restarts it.

Not thread-safe. Only the event loop thread may call should_process()
and sweep().
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from advertisement import Advertisement


@dataclass
class MemoryEntry:
    last_seen: float
    details: Optional[Advertisement] = None


class DeviceMemory:
    def __init__(self, horizon: float, clock: Callable[[], float] = time.monotonic):
        if horizon <= 0:
            raise ValueError("horizon must be positive")
        self.horizon = horizon
        self._clock = clock
        self._entries: Dict[str, MemoryEntry] = {}

    def should_process(self, digest: str, now: Optional[float] = None,
                       details: Optional[Advertisement] = None) -> bool:
        """True if digest was not seen within the horizon. Always refreshes last_seen."""
        now = self._clock() if now is None else now
        entry = self._entries.get(digest)
        fresh = entry is None or now - entry.last_seen >= self.horizon

        if entry is None:
            self._entries[digest] = MemoryEntry(now, details)
        else:
            entry.last_seen = now
            if details is not None:
                entry.details = details
        return fresh

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop entries not seen for longer than the horizon. Returns count removed."""
        now = self._clock() if now is None else now
        stale = [d for d, e in self._entries.items() if now - e.last_seen > self.horizon]
        for digest in stale:
            del self._entries[digest]
        return len(stale)

    def get(self, digest: str) -> Optional[MemoryEntry]:
        return self._entries.get(digest)

    def __contains__(self, digest: str) -> bool:
        return digest in self._entries

    def __len__(self) -> int:
        return len(self._entries)
