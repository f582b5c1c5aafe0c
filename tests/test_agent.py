from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone

import pytest

from http_analytics import events
from http_analytics.agent import AgentNotRunningError, HTTPAnalyticsAgent
from http_analytics.agent.agent import probe_job_id
from http_analytics.config import AgentConfig
from http_analytics.events import EventBus
from http_analytics.llm import GenerationError
from http_analytics.models import EndpointMonitorConfig, ProbeResult
from http_analytics.scheduler import JobScheduler


URL = "https://svc.example/api"

INSIGHT_REPLY = json.dumps(
    {
        "analysis": "Error rate is climbing.",
        "rootCauses": ["bad deploy"],
        "recommendations": ["roll back"],
        "severity": "critical",
    }
)


class _FakeGenerator:
    def __init__(self, reply: str = INSIGHT_REPLY, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str:
        self.calls.append((prompt, max_tokens))
        if self.error is not None:
            raise self.error
        return self.reply

    async def aclose(self) -> None:
        return None


class _ScriptedProber:
    """Returns one queued outcome per probe: True, False or an exception."""

    def __init__(self, outcomes: list[object] | None = None):
        self.outcomes = list(outcomes or [])
        self.on_probe = None

    async def probe(self, url: str) -> ProbeResult:
        if self.on_probe is not None:
            self.on_probe(url)
        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        ok = bool(outcome)
        return ProbeResult(
            url=url,
            status=200 if ok else 500,
            response_time_ms=50.0,
            timestamp=time.time(),
            success=ok,
        )

    async def aclose(self) -> None:
        return None


def _agent(prober: _ScriptedProber, generator: _FakeGenerator | None = None) -> tuple[HTTPAnalyticsAgent, EventBus]:
    bus = EventBus()
    agent = HTTPAnalyticsAgent(
        AgentConfig(endpoints=[]),
        generator=generator or _FakeGenerator(),
        scheduler=JobScheduler(),
        bus=bus,
        prober=prober,
    )
    return agent, bus


def _collect(bus: EventBus, event: str) -> list:
    seen: list = []
    bus.subscribe(event, seen.append)
    return seen


@pytest.mark.asyncio
async def test_failures_turn_into_one_insight_then_cooldown() -> None:
    outcomes = [True] * 7 + [False] * 3 + [False, False]
    agent, bus = _agent(_ScriptedProber(outcomes))
    insights = _collect(bus, events.INSIGHT)
    checks = _collect(bus, events.CHECK_COMPLETED)

    await agent.start_monitoring([EndpointMonitorConfig(url=URL, interval_ms=60_000)])
    assert agent.scheduler.has_job(probe_job_id(URL))

    # Ten probes with three failures: 30% is not above the threshold.
    for _ in range(10):
        await agent.run_check(URL)
    assert len(checks) == 10
    assert insights == []

    # Eleventh probe fails: four of the last ten.
    await agent.run_check(URL)
    assert len(insights) == 1
    assert insights[0].severity == "critical"
    assert insights[0].data["trigger"] == "High error rate detected"
    assert len(insights[0].data["checks"]) == 10

    # Twelfth probe fails too, but the target is cooling down.
    await agent.run_check(URL)
    assert len(insights) == 1
    assert len(agent.history.all(URL)) == 12


@pytest.mark.asyncio
async def test_generation_failure_emits_nothing_but_keeps_cooldown() -> None:
    gen = _FakeGenerator(error=GenerationError("HTTP 500"))
    agent, bus = _agent(_ScriptedProber([False] * 10), gen)
    insights = _collect(bus, events.INSIGHT)

    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])
    for _ in range(10):
        await agent.run_check(URL)

    assert insights == []
    assert len(gen.calls) == 1
    assert agent.evaluator.in_cooldown(URL)


@pytest.mark.asyncio
async def test_unknown_or_stopped_targets_are_not_probed() -> None:
    prober = _ScriptedProber()
    agent, _ = _agent(prober)

    assert await agent.run_check(URL) is None

    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])
    agent.stop_monitoring()
    assert await agent.run_check(URL) is None
    assert agent.history.all(URL) == []


@pytest.mark.asyncio
async def test_result_for_removed_target_is_discarded() -> None:
    prober = _ScriptedProber()
    agent, bus = _agent(prober)
    checks = _collect(bus, events.CHECK_COMPLETED)
    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])

    prober.on_probe = agent.remove_endpoint
    assert await agent.run_check(URL) is None

    assert checks == []
    assert URL not in agent.history
    assert not agent.scheduler.has_job(probe_job_id(URL))


@pytest.mark.asyncio
async def test_tick_exception_is_published_as_error_event() -> None:
    agent, bus = _agent(_ScriptedProber([RuntimeError("socket exploded")]))
    errors = _collect(bus, events.ERROR)
    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])

    assert await agent.run_check(URL) is None
    assert errors == [{"url": URL, "error": "socket exploded"}]

    # The next tick runs normally.
    assert await agent.run_check(URL) is not None


@pytest.mark.asyncio
async def test_add_endpoint_requires_running_agent() -> None:
    agent, _ = _agent(_ScriptedProber())
    with pytest.raises(AgentNotRunningError):
        agent.add_endpoint(EndpointMonitorConfig(url=URL))

    await agent.start_monitoring([])
    agent.add_endpoint(EndpointMonitorConfig(url=URL, interval_ms=5000))
    assert agent.status()["endpoints"] == [URL]
    assert agent.scheduler.jobs[probe_job_id(URL)].seconds == 5.0


@pytest.mark.asyncio
async def test_remove_endpoint_drops_history_and_cooldown() -> None:
    agent, _ = _agent(_ScriptedProber([False] * 10))
    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])
    for _ in range(10):
        await agent.run_check(URL)
    assert agent.evaluator.in_cooldown(URL)

    assert agent.remove_endpoint(URL) is True
    assert agent.remove_endpoint(URL) is False
    assert URL not in agent.history
    assert not agent.evaluator.in_cooldown(URL)


@pytest.mark.asyncio
async def test_stop_monitoring_keeps_history_for_reports() -> None:
    gen = _FakeGenerator(reply="# Weekly digest")
    agent, bus = _agent(_ScriptedProber([True, False]), gen)
    reports = _collect(bus, events.REPORT_GENERATED)
    await agent.start_monitoring([EndpointMonitorConfig(url=URL)])
    await agent.run_check(URL)
    await agent.run_check(URL)
    agent.stop_monitoring()

    end = datetime.now(timezone.utc) + timedelta(seconds=1)
    report = await agent.generate_report(end - timedelta(days=1), end)

    assert report == "# Weekly digest"
    prompt, max_tokens = gen.calls[-1]
    assert URL in prompt
    assert max_tokens == 2000
    assert len(reports) == 1
    assert reports[0]["data"][0]["total_checks"] == 2
    assert reports[0]["data"][0]["success_rate"] == 50.0


@pytest.mark.asyncio
async def test_report_generation_errors_propagate() -> None:
    agent, _ = _agent(_ScriptedProber(), _FakeGenerator(error=GenerationError("HTTP 503")))
    end = datetime.now(timezone.utc)
    with pytest.raises(GenerationError):
        await agent.generate_report(end - timedelta(days=1), end)


@pytest.mark.asyncio
async def test_endpoint_stats() -> None:
    agent, _ = _agent(_ScriptedProber([True, True, False, True]))
    await agent.start_monitoring([EndpointMonitorConfig(url=URL, expected_status=[200, 204])])
    for _ in range(4):
        await agent.run_check(URL)

    stats = agent.endpoint_stats(URL)
    assert stats is not None
    assert stats["total_checks"] == 4
    assert stats["success_rate"] == 75.0
    assert stats["avg_response_time"] == 50
    assert stats["status_codes"] == [200, 500]
    assert stats["expected_status"] == [200, 204]
    assert len(stats["recent_checks"]) == 4
    assert agent.endpoint_stats("https://unknown.example") is None
