"""Outbound alert notifications."""

from .telegram import TelegramNotifier, format_insight_alert, split_telegram_message

__all__ = ["TelegramNotifier", "format_insight_alert", "split_telegram_message"]
