"""Long polling runner for dose reminder button presses."""

from __future__ import annotations

import logging
import signal
import threading

from dotenv import load_dotenv

from src.dosing.service import ReminderService
from src.messaging.telegram.callbacks import process_callback_query
from src.messaging.telegram.client import TelegramClient, TelegramClientError
from src.messaging.telegram.models import TelegramUpdate
from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings
from src.observability.sentry import init_sentry
from src.paths import PROJECT_ROOT
from src.utils.logging import configure_logging

logger = logging.getLogger(__name__)


class PollingRunner:
    """Long polling runner for receiving Telegram button presses.

    Runs a continuous loop that:
    1. Polls Telegram for callback query updates using long polling
    2. Routes presses from allowed chats to the reminder service
    3. Advances the polling offset
    4. Handles graceful shutdown on SIGINT/SIGTERM
    """

    def __init__(
        self,
        service: ReminderService,
        client: TelegramClient | None = None,
        settings: TelegramConfig | None = None,
    ) -> None:
        """Initialise the polling runner.

        :param service: Reminder service that applies dose responses.
        :param client: Telegram client. If not provided, creates one from env.
        :param settings: Telegram settings. If not provided, loads from env.
        """
        self._settings = settings or get_telegram_settings()
        self._client = client or TelegramClient(
            bot_token=self._settings.bot_token,
            chat_id=self._settings.reminder_chat_id,
            poll_timeout=self._settings.poll_timeout,
        )
        self._service = service
        self._stop_event = threading.Event()
        self._consecutive_errors = 0
        self._offset: int | None = None

    def run(self) -> None:
        """Start the polling loop.

        Runs until a shutdown signal is received or stop() is called.
        """
        self._stop_event.clear()
        self._setup_signal_handlers()
        logger.info(
            f"Starting Telegram polling runner: poll_timeout={self._settings.poll_timeout}s"
        )

        while not self._stop_event.is_set():
            self.poll_once()

        logger.info("Polling runner stopped")

    def stop(self) -> None:
        """Signal the polling loop to stop."""
        logger.info("Stopping polling runner...")
        self._stop_event.set()

    def poll_once(self) -> int:
        """Fetch and process one batch of updates.

        :returns: Number of updates processed.
        """
        try:
            updates = self._client.get_updates(offset=self._offset)
        except TelegramClientError as e:
            self._handle_polling_error(e)
            return 0

        self._consecutive_errors = 0
        for update in updates:
            self._process_update(update)

        if updates:
            self._offset = max(u.update_id for u in updates) + 1
        return len(updates)

    def _process_update(self, update: TelegramUpdate) -> None:
        """Process a single update.

        :param update: The Telegram update to process.
        """
        callback_query = update.callback_query
        if callback_query is None:
            return

        chat_id = str(callback_query.message.chat.id) if callback_query.message else None
        if chat_id not in self._settings.allowed_chat_ids_set:
            logger.warning(f"Ignored button press from unauthorised chat: {chat_id}")
            return

        try:
            process_callback_query(self._client, self._service, callback_query)
            logger.debug(f"Processed callback query: id={callback_query.id}")
        except Exception:
            logger.exception(f"Error processing callback query: id={callback_query.id}")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown.

        Only possible from the main thread.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Signal handlers not installed: not running in the main thread")
            return

        def signal_handler(signum: int, frame: object) -> None:
            logger.info("Received shutdown signal")
            self.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, signal_handler)

    def _handle_polling_error(self, error: TelegramClientError) -> None:
        """Handle an error during polling.

        Backs off for longer after too many consecutive errors.

        :param error: The error that occurred.
        """
        self._consecutive_errors += 1
        logger.warning(f"Polling error (consecutive: {self._consecutive_errors}): {error}")

        if self._consecutive_errors >= self._settings.max_consecutive_errors:
            logger.error(
                f"Max consecutive errors reached ({self._settings.max_consecutive_errors}), "
                f"backing off for {self._settings.backoff_delay}s"
            )
            self._stop_event.wait(self._settings.backoff_delay)
            self._consecutive_errors = 0
        else:
            self._stop_event.wait(self._settings.error_retry_delay)


def main() -> None:
    """Entry point for running the Telegram dose button poller."""
    load_dotenv(PROJECT_ROOT / ".env")
    configure_logging()
    init_sentry()

    # Imported here so the factory reads configuration after .env is loaded
    from src.dosing.factory import get_reminder_runtime

    runtime = get_reminder_runtime()
    runtime.start()
    try:
        PollingRunner(runtime.service).run()
    finally:
        runtime.stop()


if __name__ == "__main__":
    main()
