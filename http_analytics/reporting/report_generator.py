"""Report generation over the agent's probe histories."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..models import ProbeResult

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

REPORT_TEMPLATE = "report_prompt.md.j2"
INSIGHT_TEMPLATE = "insight_prompt.j2"


def _template_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )


_ENV = _template_env()


def render_template(name: str, **context: Any) -> str:
    """Render one of the bundled prompt templates."""
    return _ENV.get_template(name).render(**context)


@dataclass(frozen=True)
class EndpointSummary:
    url: str
    total_checks: int
    success_rate: float
    avg_response_time_ms: float
    status_codes: list[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "total_checks": self.total_checks,
            "success_rate": round(self.success_rate, 2),
            "avg_response_time_ms": round(self.avg_response_time_ms),
            "status_codes": list(self.status_codes),
        }


class ReportGenerator:
    """Builds range summaries and the report prompt sent to the model."""

    def summarize(
        self,
        history_by_url: dict[str, list[ProbeResult]],
        start: datetime,
        end: datetime,
    ) -> list[EndpointSummary]:
        """Summarize every url that has checks within ``[start, end]``.

        Urls without checks in range are left out.
        """
        start_ts = start.timestamp()
        end_ts = end.timestamp()

        summaries: list[EndpointSummary] = []
        for url, history in history_by_url.items():
            in_range = [h for h in history if start_ts <= h.timestamp <= end_ts]
            if not in_range:
                continue
            total = len(in_range)
            successes = sum(1 for h in in_range if h.success)
            summaries.append(
                EndpointSummary(
                    url=url,
                    total_checks=total,
                    success_rate=successes / total * 100,
                    avg_response_time_ms=sum(h.response_time_ms for h in in_range) / total,
                    status_codes=list(dict.fromkeys(h.status for h in in_range)),
                )
            )

        logger.debug("Summarized endpoint histories", endpoints=len(summaries), start=start.isoformat(), end=end.isoformat())
        return summaries

    def render_prompt(
        self,
        summaries: list[EndpointSummary],
        *,
        start: datetime,
        end: datetime,
        endpoints_monitored: int,
    ) -> str:
        return render_template(
            REPORT_TEMPLATE,
            start=start.isoformat(),
            end=end.isoformat(),
            endpoints_monitored=endpoints_monitored,
            summaries=summaries,
        )
