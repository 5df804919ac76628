from __future__ import annotations
from dataclasses import dataclass
from typing import List, Union

from ..errors import UnknownEventError

MOUSE_EVENT_TYPES = (
    "mousedown",
    "mouseup",
    "mousemove",
    "mousedoubleclick",
    "doubleclick",
    "click",
)

_BUTTONS = ("left", "middle", "right")


@dataclass(frozen=True)
class MouseInput:
    """One low-level mouse event to send."""

    kind: str  # "mousedown"|"mouseup"|"mousemove"
    x: float
    y: float
    button: str = "left"  # "left"|"middle"|"right"|"none"
    click_count: int = 1
    # Input.dispatchMouseEvent is the only route for both scopes; "window"
    # marks events preceded by a pointer move into the view and is what the
    # InputRecorder reports
    scope: str = "point"
    modifier: int = 0


def resolve_button(button: Union[int, str, None]) -> str:
    """Accept 0/1/2 or left/middle/right; anything else means left."""
    if isinstance(button, int) and not isinstance(button, bool):
        if 0 <= button < len(_BUTTONS):
            return _BUTTONS[button]
        return "left"
    if isinstance(button, str) and button.lower() in _BUTTONS:
        return button.lower()
    return "left"


def plan_mouse_events(
    event_type: str,
    x: float,
    y: float,
    button: Union[int, str, None] = "left",
    modifier: int = 0,
) -> List[MouseInput]:
    btn = resolve_button(button)
    x, y = float(x or 0), float(y or 0)

    if event_type in ("mousedown", "mouseup"):
        return [MouseInput(event_type, x, y, btn, 1, "point", modifier)]
    if event_type == "mousemove":
        return [MouseInput("mousemove", x, y, "none", 0, "point", modifier)]
    if event_type == "mousedoubleclick":
        return [MouseInput("mousedown", x, y, btn, 2, "point", modifier)]
    if event_type == "doubleclick":
        return [
            MouseInput("mousedown", x, y, btn, 1, "point", modifier),
            MouseInput("mouseup", x, y, btn, 1, "point", modifier),
            MouseInput("mousedown", x, y, btn, 2, "point", modifier),
            MouseInput("mouseup", x, y, btn, 2, "point", modifier),
        ]
    if event_type == "click":
        # the leading move enters the view so hover state matches a real
        # click; the pair itself is the mousedown+mouseup of the event
        return [
            MouseInput("mousemove", x, y, "none", 0, "window", modifier),
            MouseInput("mousedown", x, y, btn, 1, "window", modifier),
            MouseInput("mouseup", x, y, btn, 1, "window", modifier),
        ]
    raise UnknownEventError(event_type)
