"""
Error taxonomy for the monitoring pipeline

Every component raises a subclass of MonitorError so callers can decide
what to catch at their boundary:

    - FetchError (FetchTimeout, ProviderError, InvalidResponse): metric sources
    - OutOfOrderReading: snapshot store invariant violation
    - DivisionUndefined: relative delta against a zero baseline
    - NotifyError / PersistError: notifier and report sink boundaries
    - AlertNotFound / InvalidAlertTransition: alert lifecycle misuse

ConfigurationError lives in secure_config alongside the validators that raise it.
"""


class MonitorError(Exception):
    """Base class for all pipeline errors."""


class FetchError(MonitorError):
    """A metric source could not produce readings."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class FetchTimeout(FetchError):
    """The provider did not answer within the caller-supplied timeout."""


class ProviderError(FetchError):
    """The provider answered with an error status."""

    def __init__(self, message: str, code: int | str | None = None, source: str | None = None):
        super().__init__(message, source=source)
        self.code = code


class InvalidResponse(FetchError):
    """The provider answered but the payload could not be interpreted."""


class OutOfOrderReading(MonitorError):
    """A reading is older than the latest reading stored for its metric key."""

    def __init__(self, metric_key: str, captured_at, latest_at):
        super().__init__(
            f"Reading for {metric_key} captured at {captured_at.isoformat()} "
            f"is older than latest stored reading ({latest_at.isoformat()})"
        )
        self.metric_key = metric_key
        self.captured_at = captured_at
        self.latest_at = latest_at


class DivisionUndefined(MonitorError):
    """Relative delta requested against a previous value of zero."""


class NotifyError(MonitorError):
    """A notifier failed to deliver an alert."""


class PersistError(MonitorError):
    """A report sink failed to persist a report."""


class AlertNotFound(MonitorError, KeyError):
    """No alert with the given id exists in the working set."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class InvalidAlertTransition(MonitorError, ValueError):
    """The requested status change is not allowed from the alert's current status."""
