"""Follow-up rules on agent events: critical insight alerts and outage detection."""

from typing import Dict, List, Optional

import structlog

from .. import events
from ..events import EventBus, Subscription
from ..models import Insight, ProbeResult
from ..notifications import TelegramNotifier

logger = structlog.get_logger(__name__)

ALERT_SEVERITIES = {"critical", "high"}


class AlertRules:
    """Subscribes to agent events and escalates what needs a human."""

    def __init__(
        self,
        bus: EventBus,
        *,
        notifier: Optional[TelegramNotifier] = None,
        down_after_failures: int = 5,
    ):
        self.bus = bus
        self.notifier = notifier
        self.down_after_failures = max(1, int(down_after_failures))
        self._fail_streak: Dict[str, int] = {}
        self._down: Dict[str, bool] = {}
        self._subscriptions: List[Subscription] = []

    def install(self) -> None:
        self._subscriptions = [
            self.bus.subscribe(events.INSIGHT, self.on_insight),
            self.bus.subscribe(events.CHECK_COMPLETED, self.on_check_completed),
        ]

    def uninstall(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []

    def forget(self, url: Optional[str] = None) -> None:
        """Drop outage tracking for ``url``, or for every URL when omitted."""
        if url is None:
            self._fail_streak.clear()
            self._down.clear()
            return
        self._fail_streak.pop(url, None)
        self._down.pop(url, None)

    async def on_insight(self, insight: Insight) -> None:
        if insight.severity not in ALERT_SEVERITIES:
            return
        logger.critical("CRITICAL ALERT", severity=insight.severity, message=insight.message, url=insight.data.get("url"))
        if self.notifier is not None:
            await self.notifier.send_insight_alert(insight)

    async def on_check_completed(self, result: ProbeResult) -> None:
        url = result.url
        if result.success:
            self._fail_streak[url] = 0
            self._down[url] = False
            return

        streak = self._fail_streak.get(url, 0) + 1
        self._fail_streak[url] = streak
        if streak < self.down_after_failures or self._down.get(url):
            return

        self._down[url] = True
        logger.critical("ENDPOINT DOWN", url=url, consecutive_failures=streak)
        await self.bus.publish(events.ENDPOINT_DOWN, {"url": url, "consecutive_failures": streak})
        if self.notifier is not None:
            await self.notifier.send_chunked(f"ENDPOINT DOWN: {url} - {streak} consecutive failures")


def setup_alert_rules(
    bus: EventBus,
    *,
    notifier: Optional[TelegramNotifier] = None,
    down_after_failures: int = 5,
) -> AlertRules:
    rules = AlertRules(bus, notifier=notifier, down_after_failures=down_after_failures)
    rules.install()
    return rules
