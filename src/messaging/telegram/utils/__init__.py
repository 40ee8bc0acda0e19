"""Telegram utilities."""

from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings

__all__ = [
    "TelegramConfig",
    "get_telegram_settings",
]
