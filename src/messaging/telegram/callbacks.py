"""Callback handlers for the Taken / Snooze / Skip buttons on dose reminders."""

import logging
from dataclasses import dataclass
from datetime import datetime

from src.dosing.exceptions import ReminderEngineError
from src.dosing.feedback.base import DoseAction
from src.dosing.models import DoseKey, ResponseOutcome
from src.dosing.service import ReminderService
from src.messaging.telegram.client import TelegramClient
from src.messaging.telegram.models import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup

logger = logging.getLogger(__name__)

# Callback data prefix for dose callbacks
DOSE_CALLBACK_PREFIX = "dose:"

# Telegram rejects callback data longer than this many bytes
MAX_CALLBACK_DATA_BYTES = 64

# Number of fields after the action (reminder_id, HHMM, YYYYMMDD)
_KEY_FIELDS = 3

BUTTON_LABELS = {
    DoseAction.TAKEN: "✓ Taken",
    DoseAction.SNOOZE: "⏰ Snooze 15m",
    DoseAction.SKIP: "Skip",
}


@dataclass
class CallbackResult:
    """Result of handling a callback query.

    :param answer_text: Text to show in toast/alert.
    :param show_alert: Whether to show as alert instead of toast.
    """

    answer_text: str
    show_alert: bool = False


def build_callback_data(action: DoseAction, key: DoseKey) -> str:
    """Build callback data for a dose button.

    Format: ``dose:action:reminder_id:HHMM:YYYYMMDD``

    :param action: Button action.
    :param key: Dose the button answers.
    :returns: Callback data string.
    :raises ValueError: If the data exceeds Telegram's size limit.
    """
    data = (
        f"{DOSE_CALLBACK_PREFIX}{action.value}:{key.reminder_id}:"
        f"{key.time_of_day.replace(':', '')}:{key.dose_date.strftime('%Y%m%d')}"
    )
    if len(data.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
        raise ValueError(f"Callback data too long for reminder_id={key.reminder_id!r}")
    return data


def build_dose_keyboard(
    key: DoseKey, actions: tuple[DoseAction, ...]
) -> InlineKeyboardMarkup | None:
    """Build the inline keyboard for a dose notification.

    :param key: Dose the buttons answer.
    :param actions: Actions to offer.
    :returns: The keyboard, or None if there are no actions or the key is too long.
    """
    if not actions:
        return None
    try:
        buttons = [
            InlineKeyboardButton(
                text=BUTTON_LABELS[action], callback_data=build_callback_data(action, key)
            )
            for action in actions
        ]
    except ValueError:
        logger.warning(f"Sending dose reminder without buttons: key={key}", exc_info=True)
        return None
    return InlineKeyboardMarkup(inline_keyboard=[buttons])


def parse_dose_callback(data: str) -> tuple[DoseAction, DoseKey] | None:
    """Parse dose callback data.

    Reminder ids may contain colons, so the key fields are split from the right.

    :param data: Callback data string.
    :returns: Tuple of (action, dose key) or None if invalid.
    """
    if not data.startswith(DOSE_CALLBACK_PREFIX):
        return None

    action_part, _, rest = data.removeprefix(DOSE_CALLBACK_PREFIX).partition(":")
    parts = rest.rsplit(":", _KEY_FIELDS - 1)
    if len(parts) != _KEY_FIELDS or not parts[0]:
        logger.warning(f"Invalid dose callback data: {data}")
        return None

    reminder_id, raw_time, raw_date = parts
    try:
        action = DoseAction(action_part)
        scheduled = datetime.strptime(f"{raw_date}{raw_time}", "%Y%m%d%H%M")
    except ValueError as e:
        logger.warning(f"Failed to parse dose callback: {data}, error={e}")
        return None

    return action, DoseKey(reminder_id, scheduled.strftime("%H:%M"), scheduled.date())


def _describe(action: DoseAction, outcome: ResponseOutcome) -> str:
    if action == DoseAction.TAKEN:
        return "Marked as taken"
    if action == DoseAction.SKIP:
        return "Dose skipped"
    if outcome.snoozed_until is None:
        return "Snoozed"
    return f"Snoozed until {outcome.snoozed_until.strftime('%H:%M')} UTC"


def handle_dose_callback(service: ReminderService, data: str) -> CallbackResult:
    """Handle a dose button press.

    Answering the dose dismisses its notification, which deletes the message
    the button belongs to.

    :param service: Reminder service that applies the response.
    :param data: Callback data string from the button.
    :returns: CallbackResult with response information.
    """
    parsed = parse_dose_callback(data)
    if parsed is None:
        return CallbackResult(answer_text="Invalid callback data", show_alert=True)

    action, key = parsed
    logger.info(f"Handling dose callback: action={action}, key={key}")

    try:
        if action == DoseAction.TAKEN:
            outcome = service.mark_taken(key.reminder_id, key.time_of_day, key.dose_date)
        elif action == DoseAction.SNOOZE:
            outcome = service.snooze_dose(key.reminder_id, key.time_of_day, key.dose_date)
        else:
            outcome = service.skip_dose(key.reminder_id, key.time_of_day, key.dose_date)
    except ReminderEngineError as e:
        logger.warning(f"Rejected dose callback: data={data}, error={e}")
        return CallbackResult(answer_text="Could not update this dose", show_alert=True)

    if not outcome.changed:
        status = outcome.status.value if outcome.status else "finished"
        return CallbackResult(answer_text=f"This dose is already {status}", show_alert=True)

    return CallbackResult(answer_text=_describe(action, outcome))


def process_callback_query(
    client: TelegramClient,
    service: ReminderService,
    callback_query: CallbackQuery,
) -> None:
    """Process a callback query from Telegram.

    :param client: Telegram client for sending responses.
    :param service: Reminder service that applies the response.
    :param callback_query: The callback query to process.
    """
    if not callback_query.data:
        logger.warning(f"Callback query without data: id={callback_query.id}")
        client.answer_callback_query(callback_query.id, "Invalid callback")
        return

    if not callback_query.data.startswith(DOSE_CALLBACK_PREFIX):
        logger.debug(f"Non-dose callback: {callback_query.data}")
        client.answer_callback_query(callback_query.id, "Unknown callback")
        return

    result = handle_dose_callback(service, callback_query.data)

    client.answer_callback_query(
        callback_query.id,
        text=result.answer_text,
        show_alert=result.show_alert,
    )

