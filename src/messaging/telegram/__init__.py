"""Telegram integration for dose reminders and caregiver alerts.

Run the button poller with: python -m src.messaging.telegram
"""

from src.messaging.telegram.callbacks import (
    DOSE_CALLBACK_PREFIX,
    CallbackResult,
    build_callback_data,
    build_dose_keyboard,
    handle_dose_callback,
    parse_dose_callback,
    process_callback_query,
)
from src.messaging.telegram.client import TelegramClient, TelegramClientError
from src.messaging.telegram.models import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    SendMessageResult,
    TelegramChat,
    TelegramMessageInfo,
    TelegramUpdate,
    TelegramUser,
)
from src.messaging.telegram.notifier import CaregiverAlertMirror, TelegramNotifier
from src.messaging.telegram.polling import PollingRunner
from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings

__all__ = [
    "DOSE_CALLBACK_PREFIX",
    "CallbackQuery",
    "CallbackResult",
    "CaregiverAlertMirror",
    "InlineKeyboardButton",
    "InlineKeyboardMarkup",
    "PollingRunner",
    "SendMessageResult",
    "TelegramChat",
    "TelegramClient",
    "TelegramClientError",
    "TelegramConfig",
    "TelegramMessageInfo",
    "TelegramNotifier",
    "TelegramUpdate",
    "TelegramUser",
    "build_callback_data",
    "build_dose_keyboard",
    "get_telegram_settings",
    "handle_dose_callback",
    "parse_dose_callback",
    "process_callback_query",
]
