"""AI agent: endpoint probing, history, health rules and insights."""

from http_analytics.agent.agent import AgentNotRunningError, HTTPAnalyticsAgent, TargetState
from http_analytics.agent.health import HealthEvaluator, HealthThresholds
from http_analytics.agent.history import HistoryStore
from http_analytics.agent.insights import InsightEmitter, parse_insight_reply
from http_analytics.agent.prober import EndpointProber

__all__ = [
    "AgentNotRunningError",
    "EndpointProber",
    "HTTPAnalyticsAgent",
    "HealthEvaluator",
    "HealthThresholds",
    "HistoryStore",
    "InsightEmitter",
    "TargetState",
    "parse_insight_reply",
]
