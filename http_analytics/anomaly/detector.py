from __future__ import annotations

import math
import time
from collections import deque

from http_analytics.models import AnomalySignal, WindowSample


HIGH_ERROR_RATE = "HIGH_ERROR_RATE"
RESPONSE_TIME_SPIKE = "RESPONSE_TIME_SPIKE"


def _mean(values: list[float]) -> float:
    return sum(values) / float(len(values))


def _pstdev(values: list[float], avg: float) -> float:
    variance = sum((v - avg) ** 2 for v in values) / float(len(values))
    return math.sqrt(variance)


class SlidingWindowDetector:
    """Statistical anomaly check over the trailing ``window_seconds`` of samples.

    A single window is shared by every source. Samples are appended in arrival
    order and pruned lazily from the front on each insert.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 60.0,
        min_samples: int = 10,
        error_rate_threshold: float = 0.3,
        spike_sigma: float = 3.0,
    ) -> None:
        self.window_seconds = float(window_seconds)
        self.min_samples = max(1, int(min_samples))
        self.error_rate_threshold = float(error_rate_threshold)
        self.spike_sigma = float(spike_sigma)
        self._window: deque[WindowSample] = deque()

    def __len__(self) -> int:
        return len(self._window)

    def samples(self) -> list[WindowSample]:
        return list(self._window)

    def reset(self) -> None:
        self._window.clear()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._window and self._window[0].timestamp < cutoff:
            self._window.popleft()

    def analyze(self, sample: WindowSample, *, now_ts: float | None = None) -> AnomalySignal | None:
        now = time.time() if now_ts is None else float(now_ts)
        self._window.append(sample)
        self._prune(now)

        total = len(self._window)
        if total < self.min_samples:
            return None  # warm-up

        errors = sum(1 for s in self._window if s.status_code >= 500)
        error_rate = errors / float(total)
        if error_rate > self.error_rate_threshold:
            return AnomalySignal(
                type=HIGH_ERROR_RATE,
                severity="critical",
                message=f"5xx error rate spiked to {error_rate * 100:.1f}%",
                value=error_rate,
            )

        latencies = [float(s.response_time_ms) for s in self._window if s.response_time_ms is not None]
        if len(latencies) >= self.min_samples and sample.response_time_ms is not None:
            avg = _mean(latencies)
            deviation = _pstdev(latencies, avg)
            current = float(sample.response_time_ms)
            if current > avg + self.spike_sigma * deviation:
                return AnomalySignal(
                    type=RESPONSE_TIME_SPIKE,
                    severity="warning",
                    message=f"Response time spike: {current:g}ms (baseline {round(avg)}ms)",
                    value=current,
                    baseline=avg,
                )

        return None
