"""Custom exceptions for the medication reminder engine."""


class ReminderEngineError(Exception):
    """Base exception for reminder engine errors."""


class MissingParameterError(ReminderEngineError):
    """Raised when a required inbound parameter is absent or blank."""

    def __init__(self, parameter: str) -> None:
        """Initialise MissingParameterError.

        :param parameter: Name of the missing parameter.
        """
        self.parameter = parameter
        super().__init__(f"Missing required parameter: {parameter}")


class InvalidParameterError(ReminderEngineError):
    """Raised when an inbound parameter is present but malformed."""

    def __init__(self, parameter: str, value: object, reason: str) -> None:
        """Initialise InvalidParameterError.

        :param parameter: Name of the invalid parameter.
        :param value: The rejected value.
        :param reason: Why the value was rejected.
        """
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {parameter}={value!r}: {reason}")


class TimerFacilityError(ReminderEngineError):
    """Raised when a timer cannot be armed or cancelled."""
