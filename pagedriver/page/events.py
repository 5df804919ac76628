from __future__ import annotations
import enum
import logging
import re
from typing import Any, Callable, Optional

from ..utils import maybe_await

logger = logging.getLogger(__name__)


class PageState(enum.Enum):
    UNOPENED = "unopened"
    OPENING = "opening"
    OPEN = "open"
    CLOSED = "closed"


NAVIGATION_TYPES = (
    "Undefined",
    "LinkClicked",
    "FormSubmitted",
    "BackOrForward",
    "Reload",
    "FormResubmitted",
    "Other",
)

# one nullable slot per event kind: page.on_<event>
EVENTS = (
    "initialized",
    "load_started",
    "load_finished",
    "url_changed",
    "resource_requested",
    "resource_received",
    "console_message",
    "error",
    "alert",
    "confirm",
    "prompt",
    "callback",
    "page_created",
    "closing",
    "navigation_requested",
)

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def event_name(name: str) -> str:
    """'onLoadFinished', 'loadFinished', 'on_load_finished' -> 'load_finished'."""
    snake = _CAMEL.sub("_", name).lower()
    if snake.startswith("on_"):
        snake = snake[3:]
    if snake not in EVENTS:
        raise ValueError(f"Unknown page event: {name!r}")
    return snake


class PageEvents:
    """Callback slots of a WebPage. Assigning a slot replaces the previous handler."""

    on_initialized: Optional[Callable[..., Any]] = None
    on_load_started: Optional[Callable[..., Any]] = None
    on_load_finished: Optional[Callable[..., Any]] = None
    on_url_changed: Optional[Callable[..., Any]] = None
    on_resource_requested: Optional[Callable[..., Any]] = None
    on_resource_received: Optional[Callable[..., Any]] = None
    on_console_message: Optional[Callable[..., Any]] = None
    on_error: Optional[Callable[..., Any]] = None
    on_alert: Optional[Callable[..., Any]] = None
    on_confirm: Optional[Callable[..., Any]] = None
    on_prompt: Optional[Callable[..., Any]] = None
    on_callback: Optional[Callable[..., Any]] = None
    on_page_created: Optional[Callable[..., Any]] = None
    on_closing: Optional[Callable[..., Any]] = None
    on_navigation_requested: Optional[Callable[..., Any]] = None

    def on(self, event: str, handler: Callable[..., Any]) -> Callable[[], None]:
        """Register ``handler`` for ``event``; returns a function that unregisters it.

        Unsubscribing is a no-op once another handler took the slot.
        """
        slot = "on_" + event_name(event)
        setattr(self, slot, handler)

        def unsubscribe() -> None:
            if getattr(self, slot, None) is handler:
                setattr(self, slot, None)

        return unsubscribe

    def has_handler(self, event: str) -> bool:
        return getattr(self, "on_" + event_name(event), None) is not None

    async def _fire(self, event: str, *args: Any) -> Any:
        """Call the handler for ``event`` (sync or async) and return its result."""
        handler = getattr(self, "on_" + event, None)
        if handler is None:
            return None
        return await maybe_await(handler(*args))
