from __future__ import annotations

from collections import deque
from typing import Iterator

from http_analytics.models import ProbeResult


DEFAULT_CAPACITY = 100


class HistoryStore:
    """Bounded per-target probe history.

    Each target keeps at most ``capacity`` results in chronological order;
    appending beyond that evicts the oldest entry.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = max(1, int(capacity))
        self._rings: dict[str, deque[ProbeResult]] = {}

    def record(self, url: str, result: ProbeResult) -> None:
        ring = self._rings.get(url)
        if ring is None:
            ring = deque(maxlen=self.capacity)
            self._rings[url] = ring
        ring.append(result)

    def recent(self, url: str, n: int) -> list[ProbeResult]:
        ring = self._rings.get(url)
        if not ring or n <= 0:
            return []
        items = list(ring)
        return items[-int(n):]

    def all(self, url: str) -> list[ProbeResult]:
        return list(self._rings.get(url) or [])

    def remove(self, url: str) -> bool:
        return self._rings.pop(url, None) is not None

    def urls(self) -> list[str]:
        return list(self._rings.keys())

    def total_checks(self) -> int:
        return sum(len(ring) for ring in self._rings.values())

    def snapshot(self) -> dict[str, list[ProbeResult]]:
        return {url: list(ring) for url, ring in self._rings.items()}

    def __contains__(self, url: object) -> bool:
        return url in self._rings

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rings.keys()))

    def __len__(self) -> int:
        return len(self._rings)
