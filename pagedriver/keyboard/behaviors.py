from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Union

from .keys import KeySpec, resolve_key, spec_for_char, spec_for_code

KEY_EVENT_TYPES = ("keydown", "keyup", "keypress")


@dataclass(frozen=True)
class KeyInput:
    """One low-level key event to send."""

    kind: str  # "keydown"|"keypress"|"keyup"
    spec: KeySpec
    modifier: int = 0  # script-facing bits


def _modifier_for(spec: KeySpec, modifier: int) -> int:
    # a key's implied modifier only applies when the caller gave none
    return modifier if modifier else spec.modifier


def plan_key_events(
    event_type: str, key: Union[int, str], modifier: int = 0
) -> List[KeyInput]:
    """Expand a sendEvent() key call into the events to emit, in order.

    A keypress with a multi-character string types each character as a
    keydown/keypress/keyup triple.
    """
    if event_type in ("keydown", "keyup"):
        spec: Optional[KeySpec] = resolve_key(key)
        if spec is None:
            return []
        return [KeyInput(event_type, spec, _modifier_for(spec, modifier))]

    if event_type != "keypress":
        raise ValueError(f"not a key event: {event_type!r}")

    if isinstance(key, int):
        return [KeyInput("keypress", spec_for_code(key), modifier)]
    if len(key) == 1:
        return [KeyInput("keypress", spec_for_char(key), modifier)]

    events: List[KeyInput] = []
    for ch in key:
        spec = spec_for_char(ch)
        events.append(KeyInput("keydown", spec, modifier))
        events.append(KeyInput("keypress", spec, modifier))
        events.append(KeyInput("keyup", spec, modifier))
    return events
