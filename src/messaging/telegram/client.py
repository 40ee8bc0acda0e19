"""Telegram Bot API client for sending messages and receiving button presses."""

import logging
from typing import Any

import requests

from src.messaging.telegram.models import InlineKeyboardMarkup, SendMessageResult, TelegramUpdate

logger = logging.getLogger(__name__)

# Default API timeout in seconds
DEFAULT_REQUEST_TIMEOUT = 30


class TelegramClientError(Exception):
    """Raised when Telegram API request fails."""

    pass


class TelegramClient:
    """Client for interacting with the Telegram Bot API.

    Supports sending, editing and deleting messages, answering inline button
    presses and receiving updates via long polling.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        chat_id: str | None = None,
        poll_timeout: int = 30,
    ) -> None:
        """Initialise the Telegram client.

        :param bot_token: Telegram bot token from @BotFather.
        :param chat_id: Default chat ID for sending messages. Can be overridden per-message.
        :param poll_timeout: Timeout in seconds for long polling.
        """
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._poll_timeout = poll_timeout
        self._base_url = f"https://api.telegram.org/bot{self._bot_token}"
        logger.debug(f"TelegramClient initialised with poll_timeout={poll_timeout}s")

    @property
    def chat_id(self) -> str | None:
        """Get the configured chat ID."""
        return self._chat_id

    def send_message(
        self,
        text: str,
        chat_id: str | None = None,
        parse_mode: str = "HTML",
        reply_markup: InlineKeyboardMarkup | None = None,
    ) -> SendMessageResult:
        """Send a text message to a chat.

        :param text: The message text to send.
        :param chat_id: Target chat ID. If not provided, uses the configured chat_id.
        :param parse_mode: Message parse mode (HTML or Markdown).
        :param reply_markup: Optional inline keyboard.
        :returns: Result containing message_id and chat_id.
        :raises TelegramClientError: If the API request fails.
        :raises ValueError: If no chat_id is provided or configured.
        """
        target_chat_id = self._resolve_chat_id(chat_id)
        logger.info(f"Sending message to chat_id={target_chat_id}")
        payload: dict[str, Any] = {
            "chat_id": target_chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup.model_dump()

        message_data = self._post("sendMessage", payload)
        message_id = message_data.get("message_id")
        response_chat_id = message_data.get("chat", {}).get("id")

        logger.info(f"Message sent successfully: message_id={message_id}, chat_id={target_chat_id}")
        return SendMessageResult(message_id=message_id, chat_id=response_chat_id)

    def edit_message_text(
        self,
        text: str,
        chat_id: str,
        message_id: int,
        parse_mode: str = "HTML",
        reply_markup: InlineKeyboardMarkup | None = None,
    ) -> None:
        """Replace the text of a message, dropping its keyboard unless one is given.

        :param text: New message text.
        :param chat_id: Chat containing the message.
        :param message_id: Message to edit.
        :param parse_mode: Message parse mode.
        :param reply_markup: Optional replacement keyboard.
        :raises TelegramClientError: If the API request fails.
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup.model_dump()
        self._post("editMessageText", payload)
        logger.debug(f"Edited message: message_id={message_id}, chat_id={chat_id}")

    def delete_message(self, chat_id: str, message_id: int) -> None:
        """Delete a message.

        :param chat_id: Chat containing the message.
        :param message_id: Message to delete.
        :raises TelegramClientError: If the API request fails.
        """
        self._post("deleteMessage", {"chat_id": chat_id, "message_id": message_id})
        logger.debug(f"Deleted message: message_id={message_id}, chat_id={chat_id}")

    def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool = False,
    ) -> None:
        """Answer an inline keyboard button press.

        :param callback_query_id: ID of the callback query.
        :param text: Optional toast or alert text.
        :param show_alert: Whether to show an alert instead of a toast.
        :raises TelegramClientError: If the API request fails.
        """
        payload: dict[str, Any] = {"callback_query_id": callback_query_id, "show_alert": show_alert}
        if text:
            payload["text"] = text
        self._post("answerCallbackQuery", payload)

    def get_updates(
        self,
        offset: int | None = None,
        timeout: int | None = None,
    ) -> list[TelegramUpdate]:
        """Get updates from Telegram using long polling.

        :param offset: Identifier of the first update to be returned.
            Should be one greater than the highest update_id received.
        :param timeout: Timeout in seconds for long polling. If not provided,
            uses the configured poll_timeout.
        :returns: List of updates from Telegram.
        :raises TelegramClientError: If the API request fails.
        """
        url = f"{self._base_url}/getUpdates"
        poll_timeout = timeout if timeout is not None else self._poll_timeout

        params: dict[str, Any] = {"timeout": poll_timeout, "allowed_updates": '["callback_query"]'}
        if offset is not None:
            params["offset"] = offset

        # Request timeout should be slightly longer than poll timeout
        # to avoid premature connection termination
        request_timeout = poll_timeout + 10

        logger.debug(f"Polling for updates: offset={offset}, timeout={poll_timeout}s")

        try:
            response = requests.get(url, params=params, timeout=request_timeout)
            response.raise_for_status()

            result = response.json()
            if not result.get("ok"):
                error_description = result.get("description", "Unknown error")
                raise TelegramClientError(f"Telegram API returned error: {error_description}")

            updates = [TelegramUpdate.model_validate(u) for u in result.get("result", [])]
            if updates:
                logger.debug(f"Received {len(updates)} updates")
            return updates

        except requests.exceptions.Timeout as e:
            raise TelegramClientError(
                f"Telegram API request timed out after {request_timeout}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise TelegramClientError(f"Telegram API request failed: {e}") from e

    def _resolve_chat_id(self, chat_id: str | None) -> str:
        target_chat_id = chat_id or self._chat_id
        if not target_chat_id:
            raise ValueError(
                "No chat_id provided. Set TELEGRAM_CHAT_ID environment variable, "
                "pass chat_id to constructor, or provide chat_id parameter."
            )
        return target_chat_id

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call a Bot API method and return its result.

        :param method: Bot API method name.
        :param payload: JSON body.
        :returns: The result object (empty when the API returns a bare true).
        :raises TelegramClientError: If the request fails or the API reports an error.
        """
        url = f"{self._base_url}/{method}"
        try:
            response = requests.post(url, json=payload, timeout=DEFAULT_REQUEST_TIMEOUT)
            response.raise_for_status()

            result = response.json()
            if not result.get("ok"):
                error_description = result.get("description", "Unknown error")
                raise TelegramClientError(f"Telegram API returned error: {error_description}")

            data = result.get("result")
            return data if isinstance(data, dict) else {}

        except requests.exceptions.Timeout as e:
            raise TelegramClientError(
                f"Telegram API request timed out after {DEFAULT_REQUEST_TIMEOUT}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise TelegramClientError(f"Telegram API request failed: {e}") from e
