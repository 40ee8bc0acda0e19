"""Telegram delivery of dose notifications and caregiver alerts."""

import html
import logging
from datetime import UTC, datetime

from src.dosing.feedback.base import NotificationRequest, Notifier
from src.dosing.messages import caregiver_alert_text
from src.dosing.models import DoseKey
from src.dosing.store import DoseStateStore
from src.messaging.telegram.callbacks import build_dose_keyboard
from src.messaging.telegram.client import TelegramClient, TelegramClientError

logger = logging.getLogger(__name__)

# Separator between chat id and message id in notification references
_REF_SEPARATOR = ":"


def format_notification(request: NotificationRequest) -> str:
    """Render a notification request as Telegram HTML."""
    return f"<b>{html.escape(request.title)}</b>\n{html.escape(request.body)}"


def _parse_ref(ref: str) -> tuple[str, int] | None:
    chat_id, _, message_id = ref.rpartition(_REF_SEPARATOR)
    if not chat_id or not message_id.isdigit():
        return None
    return chat_id, int(message_id)


class TelegramNotifier(Notifier):
    """Posts dose notifications to a Telegram chat with answer buttons.

    A notification that replaces an earlier one deletes the earlier message,
    so the chat shows one live message per dose.
    """

    def __init__(self, client: TelegramClient, chat_id: str | None = None) -> None:
        """Initialise the notifier.

        :param client: Telegram client.
        :param chat_id: Chat to post to. Defaults to the client's chat.
        """
        self._client = client
        self._chat_id = chat_id or client.chat_id

    def notify(self, request: NotificationRequest) -> str | None:
        """Post the notification and return a chat:message reference."""
        if request.replaces:
            self.dismiss(request.replaces, request.key)

        result = self._client.send_message(
            format_notification(request),
            chat_id=self._chat_id,
            parse_mode="HTML",
            reply_markup=build_dose_keyboard(request.key, request.actions),
        )
        return f"{result.chat_id}{_REF_SEPARATOR}{result.message_id}"

    def dismiss(self, ref: str, key: DoseKey) -> None:
        """Delete the message behind a reference."""
        parsed = _parse_ref(ref)
        if parsed is None:
            logger.debug(f"Ignoring non-Telegram notification reference: ref={ref}, key={key}")
            return

        chat_id, message_id = parsed
        try:
            self._client.delete_message(chat_id, message_id)
        except TelegramClientError as e:
            # Already deleted by the user or older than Telegram allows
            logger.info(f"Could not delete dose message: ref={ref}, key={key}, error={e}")


class CaregiverAlertMirror:
    """Mirrors queued caregiver alerts to a caregiver's Telegram chat.

    Mirroring does not remove alerts from the queue; the host application
    still drains them. Each alert is mirrored at most once.
    """

    def __init__(self, store: DoseStateStore, client: TelegramClient, chat_id: str) -> None:
        """Initialise the mirror.

        :param store: Dose state store holding the alert queue.
        :param client: Telegram client.
        :param chat_id: Caregiver chat.
        """
        self._store = store
        self._client = client
        self._chat_id = chat_id

    def mirror_pending(self, now: datetime | None = None) -> int:
        """Send every alert that has not been mirrored yet.

        :param now: Current time (defaults to now).
        :returns: Number of alerts sent.
        """
        if now is None:
            now = datetime.now(UTC)

        sent = 0
        for alert in self._store.pending_caregiver_alerts(unmirrored_only=True):
            try:
                self._client.send_message(caregiver_alert_text(alert), chat_id=self._chat_id)
            except TelegramClientError:
                logger.exception(f"Failed to mirror caregiver alert: id={alert.id}")
                continue
            self._store.mark_caregiver_alert_mirrored(alert.id, now)
            sent += 1

        if sent:
            logger.info(f"Mirrored caregiver alerts: count={sent}")
        return sent
