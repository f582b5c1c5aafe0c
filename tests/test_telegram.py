from __future__ import annotations

import json
import time

import httpx
import pytest

from http_analytics.config import TelegramConfig
from http_analytics.models import Insight
from http_analytics.notifications import TelegramNotifier, format_insight_alert, split_telegram_message


def test_split_prefers_newlines_and_respects_max_len() -> None:
    text = "\n".join(f"line {i} " + ("x" * 40) for i in range(200))
    parts = split_telegram_message(text, max_len=500)

    assert len(parts) > 1
    assert all(len(p) <= 500 for p in parts)
    assert all(p.startswith("line ") for p in parts)
    assert "\n".join(parts).replace("\n", "") == text.replace("\n", "")


def test_split_empty_text() -> None:
    assert split_telegram_message("   ") == [""]


def test_format_insight_alert() -> None:
    insight = Insight(
        timestamp=time.time(),
        type="alert",
        severity="critical",
        message="All requests fail.",
        data={"url": "https://svc.test", "trigger": "High error rate detected", "root_causes": ["dns"], "recommendations": []},
    )
    text = format_insight_alert(insight)

    assert text.startswith("HTTP analytics alert [CRITICAL]")
    assert "URL: https://svc.test" in text
    assert "- dns" in text
    assert "Recommendations" not in text


@pytest.mark.asyncio
async def test_notifier_posts_each_chunk() -> None:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/bot123:abc/sendMessage"
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(sent)}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), client=client)
        assert await notifier.send_chunked("a\n" * 10, max_len=6) is True

    assert len(sent) > 1
    assert all(p["chat_id"] == "42" for p in sent)


@pytest.mark.asyncio
async def test_notifier_redacts_token_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), client=client)
        ok, data = await notifier.send_message("hi")

    assert ok is False
    assert "123:abc" not in data["error"]


@pytest.mark.asyncio
async def test_unconfigured_notifier_skips_sending() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = TelegramNotifier(TelegramConfig(), client=client)
        assert await notifier.send_chunked("hello") is False
