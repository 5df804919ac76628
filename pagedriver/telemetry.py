from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional
import time


@dataclass
class InputRecord:
    """One synthesized input event as it was sent to the engine."""

    kind: str  # "keydown"|"keypress"|"keyup"|"mousedown"|"mouseup"|"mousemove"
    detail: str  # key name or "x,y"
    t: float  # seconds since start (monotonic)
    click_count: int = 0
    scope: str = "point"  # "point"|"window" for mouse events


@dataclass
class InputRecorder:
    """Collects the input events synthesized for one page."""

    events: List[InputRecord] = field(default_factory=list)
    start_ts: float = field(default_factory=lambda: time.perf_counter())

    def _now(self) -> float:
        """Return current monotonic time offset from the recorder's start."""
        return time.perf_counter() - self.start_ts

    def log_key(self, kind: str, key: str) -> None:
        self.events.append(InputRecord(kind, key, self._now()))

    def log_mouse(
        self, kind: str, x: float, y: float, click_count: int, scope: str
    ) -> None:
        self.events.append(
            InputRecord(kind, f"{x:g},{y:g}", self._now(), click_count, scope)
        )

    def kinds(self) -> List[str]:
        return [e.kind for e in self.events]

    def reset(self) -> None:
        """Clear all recorded events and reset the time origin to now."""
        self.events.clear()
        self.start_ts = time.perf_counter()


def get_input_recorder(page) -> InputRecorder:
    """Return the recorder attached to ``page``, creating it on first use."""
    rec: Optional[InputRecorder] = getattr(page, "_input_recorder", None)
    if rec is None:
        rec = InputRecorder()
        setattr(page, "_input_recorder", rec)
    return rec
