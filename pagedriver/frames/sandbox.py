from __future__ import annotations
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

from ..config import pcfg

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameWindow:
    """A frame's script window. A new document in the frame gets a new window id."""

    window_id: int
    frame_id: str
    context_id: int


class WindowRegistry:
    """Tracks the live default execution context of every frame of one surface."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._by_frame: Dict[str, FrameWindow] = {}
        self._by_context: Dict[int, FrameWindow] = {}

    def created(self, frame_id: str, context_id: int) -> FrameWindow:
        old = self._by_frame.get(frame_id)
        if old is not None:
            self._by_context.pop(old.context_id, None)
        window = FrameWindow(next(self._ids), frame_id, context_id)
        self._by_frame[frame_id] = window
        self._by_context[context_id] = window
        return window

    def destroyed(self, context_id: int) -> None:
        window = self._by_context.pop(context_id, None)
        if window is not None and self._by_frame.get(window.frame_id) is window:
            del self._by_frame[window.frame_id]

    def clear(self) -> None:
        self._by_frame.clear()
        self._by_context.clear()

    def lookup(self, frame_id: str) -> Optional[FrameWindow]:
        return self._by_frame.get(frame_id)

    def by_context(self, context_id: int) -> Optional[FrameWindow]:
        return self._by_context.get(context_id)

    def owns(self, context_id: Optional[int]) -> bool:
        """True if the context belongs to one of this surface's frames."""
        return context_id is not None and context_id in self._by_context

    def contexts(self) -> Dict[str, int]:
        return {fid: w.context_id for fid, w in self._by_frame.items()}

    def __len__(self) -> int:
        return len(self._by_frame)


@dataclass(frozen=True)
class Sandbox:
    """Evaluation handle bound to one frame window, valid for one generation."""

    window: FrameWindow
    generation: int

    def wrap(self, source: str, file: str) -> str:
        # direct eval inside a function: page globals are readable through
        # the window, declarations made by the evaluated code stay local
        code = json.dumps(f"{source}\n//# sourceURL={file}")
        return f"(function () {{ return eval({code}); }}).call(window)"


class SandboxManager:
    """Lazily creates one Sandbox per frame window and drops them all on navigation."""

    def __init__(self) -> None:
        self.generation = 0
        self._cache: Dict[int, Sandbox] = {}

    def invalidate(self, reason: str = "") -> None:
        self.generation += 1
        if self._cache:
            logger.debug(
                "dropping %d sandbox(es) on %s (generation %d)",
                len(self._cache),
                reason or "request",
                self.generation,
            )
        self._cache.clear()

    def get(self, window: FrameWindow) -> Sandbox:
        sandbox = self._cache.get(window.window_id)
        if sandbox is None or sandbox.generation != self.generation:
            sandbox = Sandbox(window, self.generation)
            self._cache[window.window_id] = sandbox
        return sandbox

    def discard(self, window_id: int) -> None:
        """Forget the sandbox of a window that was torn down."""
        self._cache.pop(window_id, None)

    def live(self) -> Iterable[Sandbox]:
        return list(self._cache.values())

    async def run(
        self,
        surface,
        window: FrameWindow,
        source: str,
        file: str = pcfg.EVALUATE_SOURCE_URL,
    ) -> Any:
        """Evaluate ``source`` in the window's sandbox; EvaluationError propagates."""
        sandbox = self.get(window)
        return await surface.evaluate(
            sandbox.wrap(source, file), context_id=window.context_id
        )


def function_call_source(function_source: str, args: Sequence[Any]) -> str:
    """Source applying a JS function text to JSON-serialized arguments."""
    return "(%s).apply(this, %s);" % (function_source.strip(), json.dumps(list(args)))
