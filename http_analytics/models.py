from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


INSIGHT_TYPES = ("anomaly", "trend", "alert", "recommendation")
INSIGHT_SEVERITIES = ("low", "medium", "high", "critical")


def iso_ts(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class EndpointMonitorConfig:
    url: str
    interval_ms: int = 60_000
    expected_status: list[int] = field(default_factory=lambda: [200])

    @property
    def interval_seconds(self) -> float:
        return max(1, int(self.interval_ms)) / 1000.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "interval_ms": int(self.interval_ms),
            "expected_status": list(self.expected_status),
        }


@dataclass(frozen=True)
class ProbeResult:
    url: str
    status: int
    response_time_ms: float
    timestamp: float
    success: bool
    headers: dict[str, str] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "url": self.url,
            "status": int(self.status),
            "response_time_ms": round(float(self.response_time_ms), 3),
            "timestamp": iso_ts(self.timestamp),
            "success": bool(self.success),
        }
        if self.headers is not None:
            out["headers"] = dict(self.headers)
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class WindowSample:
    status_code: int
    timestamp: float
    # None when the source carries no latency measurement.
    response_time_ms: float | None = None


@dataclass(frozen=True)
class AnomalySignal:
    type: str  # HIGH_ERROR_RATE | RESPONSE_TIME_SPIKE
    severity: str  # critical | warning
    message: str
    value: float
    baseline: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "value": self.value,
        }
        if self.baseline is not None:
            out["baseline"] = self.baseline
        return out


@dataclass(frozen=True)
class Insight:
    timestamp: float
    type: str
    severity: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.data)
        checks = data.get("checks")
        if isinstance(checks, list):
            data["checks"] = [c.to_dict() if isinstance(c, ProbeResult) else c for c in checks]
        return {
            "timestamp": iso_ts(self.timestamp),
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "data": data,
        }


@dataclass(frozen=True)
class HttpLog:
    id: int
    status_code: int
    message: str
    timestamp: float
    response_time_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status_code": self.status_code,
            "message": self.message,
            "timestamp": iso_ts(self.timestamp),
            "response_time_ms": self.response_time_ms,
        }
