"""Command line entry point for the reminder engine.

Usage:
    python -m src.dosing recover   Re-arm every stored reminder
    python -m src.dosing list      Print stored reminders
    python -m src.dosing serve     Run the in-process timer pump in the foreground
    python -m src.dosing api       Serve the HTTP API with uvicorn
"""

import argparse
import logging
import signal
import threading

import uvicorn
from dotenv import load_dotenv

from src.dosing.factory import get_reminder_runtime
from src.observability.sentry import init_sentry
from src.paths import PROJECT_ROOT
from src.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _recover(args: argparse.Namespace) -> int:
    result = get_reminder_runtime().service.recover()
    print(f"Re-armed {result.rearmed} reminders, {result.failed} failed")
    for error in result.errors:
        print(f"  {error}")
    return 1 if result.failed else 0


def _list(args: argparse.Namespace) -> int:
    scheduled = get_reminder_runtime().service.get_scheduled_reminders()
    for reminder in scheduled.reminders:
        critical = " (critical)" if reminder.is_critical else ""
        print(f"{reminder.reminder_id}\t{reminder.time_of_day}\t{reminder.name}{critical}")
    print(f"Exact timers permitted: {scheduled.can_schedule_exact}")
    return 0


def _serve(args: argparse.Namespace) -> int:
    runtime = get_reminder_runtime()
    if runtime.pump is None:
        logger.error(
            "serve needs the memory timer backend; Celery workers deliver timers otherwise"
        )
        return 1

    stop_event = threading.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, lambda signum, frame: stop_event.set())

    runtime.start()
    logger.info("Reminder engine running, press Ctrl+C to stop")
    stop_event.wait()
    runtime.stop()
    return 0


def _api(args: argparse.Namespace) -> int:
    # The app lifespan starts and stops the reminder runtime
    uvicorn.run("src.api.app:app", host=args.host, port=args.port, log_config=None)
    return 0


COMMANDS = {
    "api": _api,
    "recover": _recover,
    "list": _list,
    "serve": _serve,
}


def main(argv: list[str] | None = None) -> int:
    """Run a reminder engine command.

    :param argv: Command line arguments. Defaults to sys.argv.
    :returns: Process exit code.
    """
    parser = argparse.ArgumentParser(
        prog="python -m src.dosing", description=__doc__.splitlines()[0]
    )
    parser.add_argument("command", choices=sorted(COMMANDS))
    parser.add_argument("--host", default="127.0.0.1", help="API bind address")
    parser.add_argument("--port", type=int, default=8000, help="API port")
    args = parser.parse_args(argv)

    load_dotenv(PROJECT_ROOT / ".env")
    configure_logging()
    init_sentry()
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
