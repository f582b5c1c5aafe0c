from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from http_analytics import events
from http_analytics.agent.health import HealthEvaluator, HealthThresholds, distinct_status_codes
from http_analytics.agent.history import HistoryStore
from http_analytics.agent.insights import InsightEmitter
from http_analytics.agent.prober import EndpointProber
from http_analytics.config import AgentConfig
from http_analytics.events import EventBus
from http_analytics.llm import TextGenerator
from http_analytics.models import EndpointMonitorConfig, Insight, ProbeResult
from http_analytics.reporting import ReportGenerator
from http_analytics.scheduler.job_scheduler import JobScheduler


logger = structlog.get_logger(__name__)

PROBE_JOB_PREFIX = "probe:"


class AgentNotRunningError(RuntimeError):
    """Raised when a target is added while the agent is stopped."""


@dataclass
class TargetState:
    config: EndpointMonitorConfig
    job_id: str
    added_at: float


def probe_job_id(url: str) -> str:
    return f"{PROBE_JOB_PREFIX}{url}"


class HTTPAnalyticsAgent:
    """Monitors a set of URLs on fixed intervals.

    Each tick for a target runs probe -> record -> evaluate -> emit in order.
    Ticks for different targets interleave freely on the event loop; all
    state is touched only from that loop.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        generator: TextGenerator,
        scheduler: JobScheduler,
        bus: EventBus,
        prober: EndpointProber | None = None,
    ):
        self.config = config
        self.generator = generator
        self.scheduler = scheduler
        self.bus = bus
        self.prober = prober or EndpointProber(timeout_seconds=config.probe_timeout_seconds)
        self.history = HistoryStore(capacity=config.history_capacity)

        rules = config.health_rules
        self.evaluator = HealthEvaluator(
            HealthThresholds(
                sample_size=rules.sample_size,
                error_rate_threshold=rules.error_rate_threshold,
                slow_response_ms=rules.slow_response_ms,
                max_distinct_status_codes=rules.max_distinct_status_codes,
                cooldown_seconds=rules.cooldown_seconds,
                single_alert_per_cycle=rules.single_alert_per_cycle,
            )
        )
        self.emitter = InsightEmitter(generator, max_tokens=config.ai.insight_max_tokens)
        self.report_generator = ReportGenerator()

        self.targets: dict[str, TargetState] = {}
        self.is_running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_monitoring(self, configs: list[EndpointMonitorConfig]) -> None:
        self.is_running = True
        for config in configs:
            self._monitor_endpoint(config)
        logger.info("AI agent started monitoring", endpoints=len(configs))

    def stop_monitoring(self) -> None:
        """Cancel every probe timer. Collected histories stay readable."""
        self.is_running = False
        for url in list(self.targets.keys()):
            state = self.targets.pop(url)
            self.scheduler.remove_job(state.job_id)
        logger.info("AI agent stopped monitoring")

    def add_endpoint(self, config: EndpointMonitorConfig) -> None:
        if not self.is_running:
            raise AgentNotRunningError("Agent is not running. Start monitoring first.")
        self._monitor_endpoint(config)

    def remove_endpoint(self, url: str) -> bool:
        """Cancel the target's timer and drop its state in one step."""
        state = self.targets.pop(url, None)
        if state is None:
            return False
        self.scheduler.remove_job(state.job_id)
        self.history.remove(url)
        self.evaluator.reset(url)
        logger.info("Stopped monitoring endpoint", url=url)
        return True

    def _monitor_endpoint(self, config: EndpointMonitorConfig) -> None:
        job_id = probe_job_id(config.url)
        self.scheduler.add_interval_job(
            job_id=job_id,
            func=self.run_check,
            seconds=config.interval_seconds,
            args=(config.url,),
            description=f"Probe {config.url}",
        )
        self.targets[config.url] = TargetState(config=config, job_id=job_id, added_at=time.time())

    async def aclose(self) -> None:
        await self.prober.aclose()
        await self.generator.aclose()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def run_check(self, url: str) -> ProbeResult | None:
        """One scheduled tick for ``url``. Never raises."""
        if not self.is_running or url not in self.targets:
            return None

        try:
            result = await self.prober.probe(url)

            state = self.targets.get(url)
            if state is None or not self.is_running:
                logger.debug("Discarding probe result for removed target", url=url)
                return None

            self.history.record(url, result)
            await self.bus.publish(events.CHECK_COMPLETED, result)

            await self._analyze_endpoint_health(state.config)
            return result
        except Exception as e:
            logger.error("Error monitoring endpoint", url=url, error=str(e))
            await self.bus.publish(events.ERROR, {"url": url, "error": str(e)})
            return None

    async def _analyze_endpoint_health(self, config: EndpointMonitorConfig) -> list[Insight]:
        url = config.url
        history = self.history.all(url)
        reasons = self.evaluator.evaluate(url, history)
        if not reasons:
            return []

        samples = history[-self.evaluator.thresholds.sample_size:]
        emitted: list[Insight] = []
        for reason in reasons:
            logger.info("Health rule triggered", url=url, reason=reason)
            insight = await self.emitter.emit(url, samples, reason, expected_status=config.expected_status)
            if insight is None:
                continue
            emitted.append(insight)
            await self.bus.publish(events.INSIGHT, insight)
        return emitted

    async def check_endpoint(self, url: str) -> ProbeResult:
        """Probe ``url`` once without recording the result."""
        return await self.prober.probe(url)

    # ------------------------------------------------------------------
    # Reports and state
    # ------------------------------------------------------------------

    async def generate_report(self, start: datetime, end: datetime) -> str:
        """Ask the model for a markdown digest of every history within the range.

        Generation failures propagate to the caller.
        """
        snapshot = self.history.snapshot()
        summaries = self.report_generator.summarize(snapshot, start, end)
        prompt = self.report_generator.render_prompt(
            summaries,
            start=start,
            end=end,
            endpoints_monitored=len(snapshot),
        )

        report = await self.generator.generate(prompt, max_tokens=self.config.ai.report_max_tokens)

        await self.bus.publish(
            events.REPORT_GENERATED,
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "time_range": {"start": start.isoformat(), "end": end.isoformat()},
                "report": report,
                "data": [s.to_dict() for s in summaries],
            },
        )
        logger.info("Generated report", start=start.isoformat(), end=end.isoformat(), endpoints=len(summaries))
        return report

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "endpoints_monitored": len(self.targets),
            "total_checks": self.history.total_checks(),
            "endpoints": list(self.targets.keys()),
            "endpoint_history": {
                url: [r.to_dict() for r in items] for url, items in self.history.snapshot().items()
            },
        }

    def endpoint_stats(self, url: str) -> dict[str, Any] | None:
        history = self.history.all(url)
        if not history:
            return None

        total = len(history)
        success_rate = sum(1 for h in history if h.success) / total * 100
        avg_response_time = sum(h.response_time_ms for h in history) / total
        state = self.targets.get(url)

        return {
            "url": url,
            "total_checks": total,
            "success_rate": round(success_rate, 2),
            "avg_response_time": round(avg_response_time),
            "status_codes": distinct_status_codes(history),
            "expected_status": list(state.config.expected_status) if state else None,
            "last_check": history[-1].to_dict(),
            "recent_checks": [h.to_dict() for h in history[-10:]],
        }
