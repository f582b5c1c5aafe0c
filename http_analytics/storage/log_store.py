"""In-memory HTTP log store feeding the sliding-window detector."""

import random
from collections import deque
import time
from datetime import datetime
from typing import Deque, List, Optional

import structlog

from .. import events
from ..anomaly import SlidingWindowDetector
from ..events import EventBus
from ..models import HttpLog, WindowSample

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 3600.0
DEFAULT_MAX_LOGS = 10_000

SAMPLE_LOGS = [
    (500, "Internal Server Error"),
    (404, "Not Found"),
    (403, "Forbidden"),
    (401, "Unauthorized"),
    (400, "Bad Request"),
    (200, "OK"),
    (201, "Created"),
    (503, "Service Unavailable"),
    (502, "Bad Gateway"),
    (429, "Too Many Requests"),
]

# Weighted towards success with a steady share of 5xx.
SIMULATED_STATUSES = [
    (200, "OK"),
    (200, "OK"),
    (200, "OK"),
    (200, "OK"),
    (200, "OK"),
    (500, "Internal Server Error"),
    (500, "Internal Server Error"),
    (502, "Bad Gateway"),
    (503, "Service Unavailable"),
]


class LogStore:
    """Stores HTTP log lines and runs each new line through the detector.

    Retention is bounded two ways: lines older than ``retention_seconds``
    (measured against the newest line) are dropped, and at most ``max_logs``
    lines are kept, oldest evicted first.
    """

    def __init__(
        self,
        detector: SlidingWindowDetector,
        bus: EventBus,
        *,
        rng: Optional[random.Random] = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        max_logs: int = DEFAULT_MAX_LOGS,
    ):
        self.detector = detector
        self.bus = bus
        self.rng = rng or random.Random()
        self.retention_seconds = float(retention_seconds)
        self._logs: Deque[HttpLog] = deque(maxlen=max(1, int(max_logs)))
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._logs)

    def _prune(self, now_ts: float) -> None:
        cutoff = now_ts - self.retention_seconds
        dropped = 0
        while self._logs and self._logs[0].timestamp < cutoff:
            self._logs.popleft()
            dropped += 1
        if dropped:
            logger.debug("Pruned expired HTTP logs", dropped=dropped, kept=len(self._logs))

    async def add_http_log(
        self,
        status_code: int,
        message: str,
        response_time_ms: Optional[float] = None,
        *,
        timestamp: Optional[float] = None,
    ) -> HttpLog:
        log = HttpLog(
            id=self._next_id,
            status_code=int(status_code),
            message=message,
            timestamp=time.time() if timestamp is None else float(timestamp),
            response_time_ms=response_time_ms,
        )
        self._next_id += 1
        self._logs.append(log)
        self._prune(log.timestamp)

        signal = self.detector.analyze(
            WindowSample(
                status_code=log.status_code,
                timestamp=log.timestamp,
                response_time_ms=log.response_time_ms,
            ),
            now_ts=log.timestamp,
        )
        if signal is not None:
            logger.warning("Log anomaly detected", type=signal.type, severity=signal.severity, message=signal.message)
            await self.bus.publish(events.AI_ALERT, {"signal": signal, "log": log})

        await self.bus.publish(events.LOG_CREATED, log)
        return log

    def get_http_logs(self, start: datetime, end: datetime) -> List[HttpLog]:
        start_ts, end_ts = start.timestamp(), end.timestamp()
        return [log for log in self._logs if start_ts <= log.timestamp <= end_ts]

    async def seed_sample_logs(self) -> int:
        for status_code, message in SAMPLE_LOGS:
            await self.add_http_log(status_code, message)
        logger.info("Seeded sample HTTP logs", count=len(SAMPLE_LOGS))
        return len(SAMPLE_LOGS)

    async def simulate_log(self) -> HttpLog:
        status_code, message = self.rng.choice(SIMULATED_STATUSES)
        return await self.add_http_log(status_code, message)
