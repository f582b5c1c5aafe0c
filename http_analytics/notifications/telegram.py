from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from http_analytics.config import TelegramConfig
from http_analytics.models import Insight


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900


def split_telegram_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        chunk = s[:cut].rstrip()
        parts.append(chunk)
        s = s[cut:].lstrip()
    return parts


def redact_telegram_response(data: dict) -> str:
    safe: dict[str, Any] = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


def format_insight_alert(insight: Insight) -> str:
    data = insight.data or {}
    lines = [
        f"HTTP analytics alert [{insight.severity.upper()}]",
        f"URL: {data.get('url', 'unknown')}",
    ]
    if data.get("trigger"):
        lines.append(f"Trigger: {data['trigger']}")
    lines.append("")
    lines.append(insight.message)
    causes = data.get("root_causes") or []
    if causes:
        lines.append("")
        lines.append("Root causes:")
        lines.extend(f"- {c}" for c in causes)
    recs = data.get("recommendations") or []
    if recs:
        lines.append("")
        lines.append("Recommendations:")
        lines.extend(f"- {r}" for r in recs)
    return "\n".join(lines)


class TelegramNotifier:
    """Sends alert text to one Telegram chat."""

    def __init__(self, config: TelegramConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def _redact(self, msg: str) -> str:
        if self.config.bot_token:
            return msg.replace(self.config.bot_token, "<redacted>")
        return msg

    async def send_message(self, text: str) -> tuple[bool, dict]:
        url = f"https://api.telegram.org/bot{self.config.bot_token}/sendMessage"
        payload = {"chat_id": self.config.chat_id, "text": text}
        try:
            resp = await self.client.post(url, json=payload, timeout=15.0)
            data = resp.json()
            return bool(data.get("ok")), data
        except (httpx.HTTPError, ValueError) as e:
            return False, {"ok": False, "error": self._redact(f"{type(e).__name__}: {e}")}

    async def send_chunked(self, text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> bool:
        if not self.is_configured():
            logger.debug("Telegram not configured, skipping message")
            return False

        ok_all = True
        for part in split_telegram_message(text, max_len=max_len):
            ok, resp = await self.send_message(part)
            if not ok:
                logger.warning("Telegram send failed", response=redact_telegram_response(resp))
            ok_all = ok_all and ok
        return ok_all

    async def send_insight_alert(self, insight: Insight) -> bool:
        return await self.send_chunked(format_insight_alert(insight))

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
