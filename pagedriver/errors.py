from __future__ import annotations
from typing import Dict, List, Optional, Any


class PageError(Exception):
    """Base class for errors raised by a WebPage."""

    pass


class PageNotOpenError(PageError, RuntimeError):
    """Raised when an operation needs an open browsing surface."""

    def __init__(self, message: str = "WebPage not opened"):
        super().__init__(message)


class PageClosedError(PageNotOpenError):
    """Raised when open() is called on a page that was already closed."""

    def __init__(self, message: str = "WebPage is closed"):
        super().__init__(message)


class NoWindowError(PageError, RuntimeError):
    """Raised when the current frame path does not resolve to a window."""

    def __init__(self, message: str = "No window available"):
        super().__init__(message)


class ClipRectError(PageError, ValueError):
    pass


class RenderFormatError(PageError, ValueError):
    pass


class UnknownEventError(PageError, ValueError):
    def __init__(self, event_type: Any):
        super().__init__(f"Unknown event type: {event_type!r}")
        self.event_type = event_type


class FeatureNotImplemented(PageError, NotImplementedError):
    """Raised by webpage members that exist for API parity but are not implemented."""

    def __init__(self, feature: str):
        super().__init__(f"webpage.{feature} not implemented")
        self.feature = feature


class EvaluationError(PageError):
    """A script failed inside the page.

    ``frames`` is a list of ``{"file", "line", "function"}`` dicts, innermost first.
    """

    def __init__(self, message: str, frames: Optional[List[Dict[str, Any]]] = None):
        super().__init__(f"Error during javascript evaluation in the web page: {message}")
        self.message = message
        self.frames = list(frames or [])
