from __future__ import annotations
from typing import Any, Dict, Iterable

from ..keyboard.keys import to_cdp_modifiers
from ..utils import send_cdp_event
from .behaviors import MouseInput

_CDP_MOUSE_TYPES = {
    "mousedown": "mousePressed",
    "mouseup": "mouseReleased",
    "mousemove": "mouseMoved",
}


def mouse_event_params(event: MouseInput) -> Dict[str, Any]:
    """Keyword arguments for Surface.dispatch_mouse() for one planned mouse event."""
    return {
        "type_": _CDP_MOUSE_TYPES[event.kind],
        "x": float(event.x),
        "y": float(event.y),
        "button": event.button,
        "click_count": int(event.click_count),
        "modifiers": to_cdp_modifiers(event.modifier),
    }


async def emit_mouse_events(
    surface, events: Iterable[MouseInput], recorder=None
) -> None:
    """Send mouse events in order, logging each to ``recorder`` when given."""
    for event in events:
        params = mouse_event_params(event)
        if recorder is not None:
            recorder.log_mouse(
                event.kind, event.x, event.y, event.click_count, event.scope
            )
        await send_cdp_event(
            lambda params=params: surface.dispatch_mouse(**params),
            label=params["type_"],
        )
