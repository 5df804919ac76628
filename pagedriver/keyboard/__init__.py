from .keys import KEY_CODES, Modifier, KeySpec, resolve_key, spec_for_char, spec_for_code
from .behaviors import KeyInput, plan_key_events, KEY_EVENT_TYPES
from .primitives import emit_key_events, key_event_params

__all__ = [
    "KEY_CODES",
    "Modifier",
    "KeySpec",
    "KeyInput",
    "plan_key_events",
    "emit_key_events",
    "resolve_key",
]
