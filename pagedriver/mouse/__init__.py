from .behaviors import MouseInput, plan_mouse_events, resolve_button, MOUSE_EVENT_TYPES
from .dispatchers import emit_mouse_events, mouse_event_params

__all__ = [
    "MouseInput",
    "plan_mouse_events",
    "emit_mouse_events",
    "resolve_button",
]
