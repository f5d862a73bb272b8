"""Exception hierarchy for the capture and notification pipeline.

Capture errors are raised by the rendering engine and caught by the
capture coordinator. Dispatch errors are raised inside the webhook
dispatcher and converted into a DispatchResult for the caller.
"""


class MatchNotifierError(Exception):
    """Base class for all match notifier errors."""


class CaptureError(MatchNotifierError):
    """A capture job could not produce its screenshot."""


class EngineUnavailable(CaptureError):
    """The headless browser could not be started."""


class NavigationError(CaptureError):
    """The report page could not be loaded."""


class NavigationTimeout(NavigationError):
    """The report page did not settle within the navigation timeout."""


class ReadinessTimeout(CaptureError):
    """The readiness marker did not appear within the ready timeout."""


class CaptureIOError(CaptureError):
    """The screenshot could not be written to disk."""


class DispatchError(MatchNotifierError):
    """The webhook did not accept the notification."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SubscriptionError(MatchNotifierError):
    """The change-stream subscription could not be established."""
