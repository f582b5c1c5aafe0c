from __future__ import annotations

import hmac
import time
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import unquote

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from http_analytics import __version__, events
from http_analytics.agent import AgentNotRunningError, EndpointProber, HTTPAnalyticsAgent
from http_analytics.anomaly import SlidingWindowDetector
from http_analytics.config import AgentConfig, get_config
from http_analytics.events import EventBus
from http_analytics.llm import GenerationError, TextGenerator, build_generator
from http_analytics.notifications import TelegramNotifier
from http_analytics.scheduler import JobScheduler, setup_alert_rules, setup_scheduled_reports
from http_analytics.schema import CheckRequest, MonitorRequest, ReportRequest, RestartRequest
from http_analytics.storage import LogStore


logger = structlog.get_logger(__name__)

SIMULATE_LOGS_JOB_ID = "simulate-logs"

AI_DISABLED_DETAIL = {
    "error": "AI Agent is not enabled",
    "message": "Set AI_PROVIDER and the matching API key to enable AI features",
    "setup": {
        "gemini": "GEMINI_API_KEY (default provider)",
        "anthropic": "ANTHROPIC_API_KEY",
        "openai": "OPENAI_API_KEY",
        "groq": "GROQ_API_KEY",
        "ollama": "OLLAMA_BASE_URL (no key needed)",
        "huggingface": "HUGGINGFACE_API_KEY",
        "cohere": "COHERE_API_KEY",
    },
}


def _auth_header_token(req: Request) -> str:
    raw = req.headers.get("authorization") or ""
    parts = raw.split(None, 1)
    if len(parts) != 2 or parts[0].strip().lower() != "bearer":
        return ""
    return parts[1].strip()


def _default_range(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    now = datetime.now(timezone.utc)
    return start or (now - timedelta(hours=24)), end or now


def create_app(
    config: AgentConfig | None = None,
    *,
    generator: TextGenerator | None = None,
    prober: EndpointProber | None = None,
) -> FastAPI:
    config = config or get_config()
    app = FastAPI(title="HTTP Analytics", version=__version__)

    bus = EventBus()
    scheduler = JobScheduler()
    detector = SlidingWindowDetector(
        window_seconds=config.anomaly.window_seconds,
        min_samples=config.anomaly.min_samples,
        error_rate_threshold=config.anomaly.error_rate_threshold,
        spike_sigma=config.anomaly.spike_sigma,
    )
    log_store = LogStore(
        detector,
        bus,
        retention_seconds=config.log_retention_hours * 3600.0,
        max_logs=config.max_logs,
    )

    generator = generator or build_generator(config.ai)
    agent: HTTPAnalyticsAgent | None = None
    if generator is not None:
        agent = HTTPAnalyticsAgent(
            config,
            generator=generator,
            scheduler=scheduler,
            bus=bus,
            prober=prober or EndpointProber(timeout_seconds=config.probe_timeout_seconds),
        )
    else:
        logger.warning("AI agent disabled: no usable provider configured", provider=config.ai.provider)

    notifier = TelegramNotifier(config.telegram) if config.telegram.is_configured() else None

    app.state.config = config
    app.state.bus = bus
    app.state.scheduler = scheduler
    app.state.detector = detector
    app.state.log_store = log_store
    app.state.agent = agent
    app.state.notifier = notifier
    app.state.alert_rules = None

    @app.on_event("startup")
    async def _startup() -> None:
        await scheduler.start()

        if agent is not None:
            app.state.alert_rules = setup_alert_rules(
                bus,
                notifier=notifier,
                down_after_failures=config.health_rules.down_after_failures,
            )
            setup_scheduled_reports(agent, scheduler, config.reports)
            await agent.start_monitoring([e.to_monitor_config() for e in config.endpoints])

        if config.seed_sample_logs:
            await log_store.seed_sample_logs()
        if config.simulate_logs:
            scheduler.add_interval_job(
                job_id=SIMULATE_LOGS_JOB_ID,
                func=log_store.simulate_log,
                seconds=config.log_simulation_interval_seconds,
                description="Simulated HTTP log feed",
            )

        logger.info(
            "HTTP analytics started",
            ai_agent="enabled" if agent is not None else "disabled",
            endpoints=len(agent.targets) if agent is not None else 0,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if agent is not None:
            agent.stop_monitoring()
        if app.state.alert_rules is not None:
            app.state.alert_rules.uninstall()
        await scheduler.stop()
        if agent is not None:
            await agent.aclose()
        if notifier is not None:
            await notifier.aclose()
        logger.info("HTTP analytics stopped")

    @app.middleware("http")
    async def _log_api_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            logger.info(
                "api request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000.0, 1),
            )
        return response

    def require_agent() -> HTTPAnalyticsAgent:
        if agent is None:
            raise HTTPException(status_code=503, detail=AI_DISABLED_DETAIL)
        return agent

    def _forget_outages(url: str | None = None) -> None:
        if app.state.alert_rules is not None:
            app.state.alert_rules.forget(url)

    def require_api_token(req: Request) -> None:
        expected = config.api_token or ""
        if not expected:
            return
        token = _auth_header_token(req)
        if not token:
            raise HTTPException(status_code=401, detail="missing_bearer_token")
        if not hmac.compare_digest(token, expected):
            raise HTTPException(status_code=403, detail="invalid_token")

    # -----------------
    # Health and logs
    # -----------------

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "ai_agent": "enabled" if agent is not None else "disabled",
        }

    @app.get("/api/logs", dependencies=[Depends(require_api_token)])
    async def get_logs(
        start_date: datetime | None = Query(default=None, alias="startDate"),
        end_date: datetime | None = Query(default=None, alias="endDate"),
    ) -> list[dict[str, Any]]:
        start, end = _default_range(start_date, end_date)
        return [log.to_dict() for log in log_store.get_http_logs(start, end)]

    # -----------------
    # AI agent
    # -----------------

    @app.get("/api/ai-agent/status")
    async def agent_status(a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        return a.status()

    @app.get("/api/ai-agent/endpoint/{url:path}")
    async def endpoint_stats(url: str, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        stats = a.endpoint_stats(unquote(url))
        if stats is None:
            raise HTTPException(status_code=404, detail="Endpoint not found")
        return stats

    @app.post("/api/ai-agent/check")
    async def manual_check(body: CheckRequest, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        result = await a.check_endpoint(body.url)
        return {"success": True, "result": result.to_dict()}

    @app.post("/api/ai-agent/report")
    async def report(body: ReportRequest, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        start, end = _default_range(body.start_date, body.end_date)
        try:
            text = await a.generate_report(start, end)
        except GenerationError as e:
            logger.error("Report generation failed", error=str(e))
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {
            "success": True,
            "report": text,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/api/ai-agent/monitor")
    async def add_monitor(body: MonitorRequest, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        try:
            a.add_endpoint(body.to_monitor_config())
        except AgentNotRunningError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return {"success": True, "message": f"Started monitoring {body.url}"}

    @app.delete("/api/ai-agent/monitor/{url:path}")
    async def remove_monitor(url: str, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        target = unquote(url)
        if not a.remove_endpoint(target):
            raise HTTPException(status_code=404, detail="Endpoint not monitored")
        _forget_outages(target)
        return {"success": True, "message": f"Stopped monitoring {target}"}

    @app.post("/api/ai-agent/stop")
    async def stop_all(a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        a.stop_monitoring()
        _forget_outages()
        return {"success": True, "message": "All monitoring stopped"}

    @app.post("/api/ai-agent/restart")
    async def restart(body: RestartRequest, a: HTTPAnalyticsAgent = Depends(require_agent)) -> dict[str, Any]:
        a.stop_monitoring()
        _forget_outages()
        await a.start_monitoring([e.to_monitor_config() for e in body.endpoints])
        return {"success": True, "message": "Monitoring restarted"}

    # -----------------
    # Scheduler
    # -----------------

    @app.get("/api/scheduler/jobs", dependencies=[Depends(require_api_token)])
    async def list_jobs() -> dict[str, Any]:
        return {"scheduler": scheduler.get_scheduler_status(), "jobs": scheduler.list_jobs()}

    def _require_job(job_id: str) -> str:
        job_id = unquote(job_id)
        if not scheduler.has_job(job_id):
            raise HTTPException(status_code=404, detail="Job not found")
        return job_id

    @app.post("/api/scheduler/jobs/{job_id:path}/pause", dependencies=[Depends(require_api_token)])
    async def pause_job(job_id: str) -> dict[str, Any]:
        job_id = _require_job(job_id)
        return {"success": scheduler.pause_job(job_id), "job": scheduler.get_job_status(job_id)}

    @app.post("/api/scheduler/jobs/{job_id:path}/resume", dependencies=[Depends(require_api_token)])
    async def resume_job(job_id: str) -> dict[str, Any]:
        job_id = _require_job(job_id)
        return {"success": scheduler.resume_job(job_id), "job": scheduler.get_job_status(job_id)}

    @app.post("/api/scheduler/jobs/{job_id:path}/run", dependencies=[Depends(require_api_token)])
    async def run_job(job_id: str) -> dict[str, Any]:
        job_id = _require_job(job_id)
        if not await scheduler.run_job_once(job_id):
            raise HTTPException(status_code=500, detail=f"Job {job_id} failed")
        return {"success": True, "job": scheduler.get_job_status(job_id)}

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal Server Error"})

    # -----------------
    # WebSockets
    # -----------------

    async def _hold_open(websocket: WebSocket) -> None:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({"type": "pong"})

    @app.websocket("/ws")
    async def logs_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Log WebSocket client connected")

        async def on_log(log) -> None:
            await websocket.send_json({"type": "update", "data": log.to_dict()})

        async def on_alert(payload: dict[str, Any]) -> None:
            message = {"event": "AI_ALERT", **payload["signal"].to_dict()}
            message["timestamp"] = payload["log"].to_dict()["timestamp"]
            await websocket.send_json(message)

        start, end = _default_range(None, None)
        await websocket.send_json(
            {"type": "initial", "data": [log.to_dict() for log in log_store.get_http_logs(start, end)]}
        )
        subscriptions = [bus.subscribe(events.LOG_CREATED, on_log), bus.subscribe(events.AI_ALERT, on_alert)]
        try:
            await _hold_open(websocket)
        except WebSocketDisconnect:
            logger.info("Log WebSocket client disconnected")
        finally:
            for sub in subscriptions:
                sub.cancel()

    @app.websocket("/ws/ai-agent")
    async def agent_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        if agent is None:
            await websocket.send_json({"type": "error", **AI_DISABLED_DETAIL})
            await websocket.close(code=1013)
            return

        logger.info("AI agent WebSocket client connected")

        async def on_insight(insight) -> None:
            await websocket.send_json({"type": "ai-insight", "insight": insight.to_dict()})

        async def on_check(result) -> None:
            await websocket.send_json({"type": "check-completed", "result": result.to_dict()})

        async def on_report(report: dict[str, Any]) -> None:
            await websocket.send_json({"type": "report-generated", "report": report})

        await websocket.send_json({"type": "status", "data": agent.status()})
        subscriptions = [
            bus.subscribe(events.INSIGHT, on_insight),
            bus.subscribe(events.CHECK_COMPLETED, on_check),
            bus.subscribe(events.REPORT_GENERATED, on_report),
        ]
        try:
            await _hold_open(websocket)
        except WebSocketDisconnect:
            logger.info("AI agent WebSocket client disconnected")
        finally:
            for sub in subscriptions:
                sub.cancel()

    return app
