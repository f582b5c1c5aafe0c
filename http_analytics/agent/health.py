from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence

from http_analytics.models import ProbeResult


HIGH_ERROR_RATE = "High error rate detected"
SLOW_RESPONSE = "Slow response time detected"
UNSTABLE_STATUS_CODES = "Unstable status codes detected"


@dataclass(frozen=True)
class HealthThresholds:
    sample_size: int = 10
    error_rate_threshold: float = 0.3
    slow_response_ms: float = 5000.0
    max_distinct_status_codes: int = 3
    cooldown_seconds: float = 5 * 60.0
    single_alert_per_cycle: bool = False


def compute_error_rate(samples: Sequence[ProbeResult]) -> float | None:
    if not samples:
        return None
    failures = sum(1 for s in samples if not s.success)
    return failures / float(len(samples))


def mean_response_time_ms(samples: Sequence[ProbeResult]) -> float | None:
    if not samples:
        return None
    return sum(float(s.response_time_ms) for s in samples) / float(len(samples))


def distinct_status_codes(samples: Sequence[ProbeResult]) -> list[int]:
    seen: list[int] = []
    for s in samples:
        if s.status not in seen:
            seen.append(s.status)
    return seen


class HealthEvaluator:
    """Fixed-threshold health rules over a target's most recent probes.

    Every fired rule stamps the target's cooldown marker; while the marker is
    younger than ``cooldown_seconds`` the rules are not inspected at all.
    """

    def __init__(self, thresholds: HealthThresholds | None = None) -> None:
        self.thresholds = thresholds or HealthThresholds()
        self._last_alert: dict[str, float] = {}

    def last_alert(self, url: str) -> float | None:
        return self._last_alert.get(url)

    def reset(self, url: str) -> None:
        self._last_alert.pop(url, None)

    def in_cooldown(self, url: str, *, now_ts: float | None = None) -> bool:
        last = self._last_alert.get(url)
        if last is None:
            return False
        now = time.time() if now_ts is None else float(now_ts)
        return (now - last) < float(self.thresholds.cooldown_seconds)

    def evaluate(
        self,
        url: str,
        history: Sequence[ProbeResult],
        *,
        now_ts: float | None = None,
    ) -> list[str]:
        now = time.time() if now_ts is None else float(now_ts)
        if self.in_cooldown(url, now_ts=now):
            return []

        t = self.thresholds
        samples = list(history)[-max(1, int(t.sample_size)):]
        if not samples:
            return []

        checks = (
            (HIGH_ERROR_RATE, lambda: compute_error_rate(samples) > float(t.error_rate_threshold)),
            (SLOW_RESPONSE, lambda: mean_response_time_ms(samples) > float(t.slow_response_ms)),
            (UNSTABLE_STATUS_CODES, lambda: len(distinct_status_codes(samples)) > int(t.max_distinct_status_codes)),
        )

        fired: list[str] = []
        for reason, predicate in checks:
            if not predicate():
                continue
            self._last_alert[url] = now
            fired.append(reason)
            if t.single_alert_per_cycle:
                break
        return fired
