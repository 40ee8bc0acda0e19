"""Timer facilities that deliver reminder timers."""

from src.dosing.timers.base import TimerFacility, TimerHandler
from src.dosing.timers.memory import InMemoryTimerFacility, TimerPump

__all__ = [
    "InMemoryTimerFacility",
    "TimerFacility",
    "TimerHandler",
    "TimerPump",
]
