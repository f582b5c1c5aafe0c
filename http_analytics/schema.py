from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from http_analytics.models import EndpointMonitorConfig


class CheckRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2000)


class ReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate")


class MonitorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1, max_length=2000)
    interval_ms: int = Field(60_000, ge=1000, le=24 * 60 * 60 * 1000, alias="interval")
    expected_status: list[int] = Field(default_factory=lambda: [200], alias="expectedStatus")

    def to_monitor_config(self) -> EndpointMonitorConfig:
        return EndpointMonitorConfig(
            url=self.url,
            interval_ms=self.interval_ms,
            expected_status=list(self.expected_status),
        )


class RestartRequest(BaseModel):
    endpoints: list[MonitorRequest]
