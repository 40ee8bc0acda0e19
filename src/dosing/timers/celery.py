"""Durable timer facility backed by Celery ETA tasks.

Each armed timer is a Celery task scheduled with an ETA plus a row in the
armed_timers table naming the task id currently allowed to fire. Re-arming
or cancelling replaces or deletes the row and revokes the old task, so a
delivery whose task id no longer matches the row is stale and is discarded.
"""

import logging
import uuid
from datetime import UTC, datetime

from celery import Celery
from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from src.database.connection import session_scope
from src.database.medications import delete_armed_timer, get_armed_timer, upsert_armed_timer
from src.dosing.exceptions import TimerFacilityError
from src.dosing.models import TimerEvent, TimerId
from src.dosing.timers.base import TimerFacility

logger = logging.getLogger(__name__)

FIRE_TIMER_TASK_NAME = "src.orchestration.tasks.fire_timer_task"


class CeleryTimerFacility(TimerFacility):
    """Timer facility that schedules Celery tasks with an ETA."""

    def __init__(
        self,
        celery_app: Celery,
        session_factory: sessionmaker[Session],
        exact_permitted: bool = True,
        task_name: str = FIRE_TIMER_TASK_NAME,
    ) -> None:
        """Initialise the facility.

        :param celery_app: Celery application used to send and revoke tasks.
        :param session_factory: Factory for sessions on the armed timer registry.
        :param exact_permitted: Whether exact timers are permitted.
        :param task_name: Registered name of the task that delivers timers.
        """
        self._celery_app = celery_app
        self._session_factory = session_factory
        self._exact_permitted = exact_permitted
        self._task_name = task_name

    def arm(
        self, timer_id: TimerId, fire_at: datetime, event: TimerEvent, exact: bool = True
    ) -> None:
        """Arm a timer, revoking the task of any timer with the same id.

        :raises TimerFacilityError: If the task cannot be sent.
        """
        fire_at = fire_at.astimezone(UTC)
        task_id = uuid.uuid4().hex

        with session_scope(self._session_factory) as session:
            _, previous_task_id = upsert_armed_timer(
                session,
                owner=timer_id.owner,
                correlation_key=timer_id.correlation_key,
                task_id=task_id,
                fire_at=fire_at,
                event=event.model_dump(mode="json"),
                exact=exact,
            )

        try:
            self._celery_app.send_task(
                self._task_name,
                kwargs={
                    "owner": timer_id.owner,
                    "correlation_key": timer_id.correlation_key,
                    "task_id": task_id,
                },
                eta=fire_at,
                task_id=task_id,
            )
        except Exception as e:
            logger.exception(
                f"Failed to send timer task: owner={timer_id.owner}, key={timer_id.correlation_key}"
            )
            with session_scope(self._session_factory) as session:
                delete_armed_timer(
                    session, timer_id.owner, timer_id.correlation_key, task_id=task_id
                )
            raise TimerFacilityError(f"Could not arm timer {timer_id}: {e}") from e

        if previous_task_id is not None:
            self._revoke(previous_task_id)

        logger.debug(
            f"Armed timer: owner={timer_id.owner}, key={timer_id.correlation_key}, "
            f"fire_at={fire_at.isoformat()}, task_id={task_id}, exact={exact}"
        )

    def cancel(self, timer_id: TimerId) -> None:
        """Cancel a timer and revoke its task."""
        with session_scope(self._session_factory) as session:
            task_id = delete_armed_timer(session, timer_id.owner, timer_id.correlation_key)

        if task_id is not None:
            self._revoke(task_id)
            logger.debug(f"Cancelled timer: owner={timer_id.owner}, key={timer_id.correlation_key}")

    def can_schedule_exact(self) -> bool:
        """Check whether exact timers are permitted."""
        return self._exact_permitted

    def claim(self, owner: str, correlation_key: str, task_id: str) -> TimerEvent | None:
        """Claim a delivered timer.

        Removes the registry row so the timer fires at most once, unless it is
        re-armed.

        :param owner: Timer owner from the task kwargs.
        :param correlation_key: Timer correlation key from the task kwargs.
        :param task_id: Id of the delivered task.
        :returns: The event to dispatch, or None if the delivery is stale.
        """
        with session_scope(self._session_factory) as session:
            timer = get_armed_timer(session, owner, correlation_key)
            if timer is None or timer.task_id != task_id:
                logger.info(
                    f"Discarding stale timer delivery: owner={owner}, key={correlation_key}, "
                    f"task_id={task_id}"
                )
                return None

            raw_event = timer.event
            delete_armed_timer(session, owner, correlation_key, task_id=task_id)

        try:
            return TimerEvent.model_validate(raw_event)
        except ValidationError:
            logger.exception(
                f"Discarding corrupt timer event: owner={owner}, key={correlation_key}"
            )
            return None

    def _revoke(self, task_id: str) -> None:
        try:
            self._celery_app.control.revoke(task_id)
        except Exception:
            # The registry check still discards the task if it is delivered
            logger.warning(f"Failed to revoke timer task: task_id={task_id}", exc_info=True)
