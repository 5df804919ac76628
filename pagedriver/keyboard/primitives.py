from __future__ import annotations
from typing import Any, Dict, Iterable

from ..utils import send_cdp_event
from .behaviors import KeyInput
from .keys import to_cdp_modifiers

# engine event type per script-facing kind
_CDP_KEY_TYPES = {"keydown": "rawKeyDown", "keypress": "char", "keyup": "keyUp"}


def key_event_params(event: KeyInput) -> Dict[str, Any]:
    """Keyword arguments for Surface.dispatch_key() for one planned key event."""
    spec = event.spec
    kwargs: Dict[str, Any] = {
        "type_": _CDP_KEY_TYPES[event.kind],
        "modifiers": to_cdp_modifiers(event.modifier),
        "key": spec.key,
    }
    if spec.code:
        kwargs["code"] = spec.code
    if spec.key_code:
        kwargs["windows_virtual_key_code"] = spec.key_code
        kwargs["native_virtual_key_code"] = spec.key_code
    if event.kind == "keypress":
        if spec.text is None:
            # keys without text never produce a keypress; closest is a keyDown
            kwargs["type_"] = "keyDown"
        else:
            kwargs["text"] = spec.text
            kwargs["unmodified_text"] = spec.text
    return kwargs


async def emit_key_events(surface, events: Iterable[KeyInput], recorder=None) -> None:
    for event in events:
        params = key_event_params(event)
        if recorder is not None:
            recorder.log_key(event.kind, event.spec.key)
        await send_cdp_event(
            lambda params=params: surface.dispatch_key(**params),
            label=params["type_"],
        )
