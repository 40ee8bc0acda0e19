"""Tests for Telegram polling runner module."""

import unittest
from unittest.mock import MagicMock, patch

from src.messaging.telegram.client import TelegramClientError
from src.messaging.telegram.models import TelegramUpdate
from src.messaging.telegram.polling import PollingRunner
from src.messaging.telegram.utils.config import TelegramConfig


def _callback_update(update_id: int, chat_id: int) -> TelegramUpdate:
    return TelegramUpdate.model_validate(
        {
            "update_id": update_id,
            "callback_query": {
                "id": f"cb-{update_id}",
                "from": {"id": 1, "first_name": "Test"},
                "message": {
                    "message_id": 7,
                    "date": 1234567890,
                    "chat": {"id": chat_id, "type": "private"},
                },
                "data": "dose:taken:m1:0800:20260601",
            },
        }
    )


class TestPollingRunner(unittest.TestCase):
    """Tests for PollingRunner."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.settings = TelegramConfig(
            bot_token="test-token",
            allowed_chat_ids="12345,67890",
            max_consecutive_errors=2,
            _env_file=None,
        )
        self.mock_client = MagicMock()
        self.mock_service = MagicMock()
        self.runner = PollingRunner(
            self.mock_service, client=self.mock_client, settings=self.settings
        )

    @patch("src.messaging.telegram.polling.process_callback_query")
    def test_processes_allowed_chats_and_advances_offset(self, mock_process: MagicMock) -> None:
        """Test presses from allowed chats are routed and the offset moves past them."""
        self.mock_client.get_updates.return_value = [
            _callback_update(5, 12345),
            _callback_update(6, 11111),
        ]

        processed = self.runner.poll_once()

        self.assertEqual(processed, 2)
        mock_process.assert_called_once()
        self.assertEqual(mock_process.call_args.args[2].id, "cb-5")

        self.mock_client.get_updates.return_value = []
        self.runner.poll_once()
        self.mock_client.get_updates.assert_called_with(offset=7)

    @patch("src.messaging.telegram.polling.process_callback_query")
    def test_ignores_updates_without_callback(self, mock_process: MagicMock) -> None:
        """Test plain message updates are skipped."""
        self.mock_client.get_updates.return_value = [
            TelegramUpdate.model_validate(
                {
                    "update_id": 1,
                    "message": {
                        "message_id": 1,
                        "date": 1234567890,
                        "chat": {"id": 12345, "type": "private"},
                        "text": "hello",
                    },
                }
            )
        ]

        self.runner.poll_once()

        mock_process.assert_not_called()

    @patch("src.messaging.telegram.polling.process_callback_query")
    def test_processing_error_does_not_stop_batch(self, mock_process: MagicMock) -> None:
        """Test an exception for one press does not stop the others."""
        mock_process.side_effect = [RuntimeError("boom"), None]
        self.mock_client.get_updates.return_value = [
            _callback_update(1, 12345),
            _callback_update(2, 67890),
        ]

        self.runner.poll_once()

        self.assertEqual(mock_process.call_count, 2)

    def test_polling_errors_back_off(self) -> None:
        """Test repeated polling errors wait for the backoff delay."""
        self.mock_client.get_updates.side_effect = TelegramClientError("down")

        with patch.object(self.runner._stop_event, "wait") as mock_wait:
            self.runner.poll_once()
            self.runner.poll_once()

        self.assertEqual(
            [c.args[0] for c in mock_wait.call_args_list],
            [self.settings.error_retry_delay, self.settings.backoff_delay],
        )

    def test_stop(self) -> None:
        """Test stop sets the stop event."""
        self.runner.stop()

        self.assertTrue(self.runner._stop_event.is_set())


if __name__ == "__main__":
    unittest.main()
