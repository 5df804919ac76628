from __future__ import annotations
import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import pcfg

logger = logging.getLogger(__name__)


@dataclass
class FrameNode:
    """A frame of the live frame tree, as reported by the engine."""

    id: str
    name: str = ""
    url: str = ""
    children: List["FrameNode"] = field(default_factory=list)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class ByIndex:
    index: int


@dataclass(frozen=True)
class ByName:
    name: str


FrameSelector = Union[ByIndex, ByName]


class FocusSwitch(enum.IntEnum):
    """Outcome of switch_to_focused_frame()."""

    NO_FOCUSED_WINDOW = -1
    UNREACHABLE = -2
    SWITCHED = 1


def coerce_selector(value: Union[int, str, ByIndex, ByName]) -> FrameSelector:
    """Accept plain ints/strings the way scripts pass them."""
    if isinstance(value, (ByIndex, ByName)):
        return value
    if isinstance(value, bool):
        raise TypeError("frame selector must be an index or a name")
    if isinstance(value, int):
        return ByIndex(value)
    if isinstance(value, str):
        return ByName(value)
    raise TypeError(f"frame selector must be an index or a name, not {value!r}")


def frame_tree_from_cdp(tree) -> FrameNode:
    """Convert a cdp.page.FrameTree into FrameNode objects.

    The top frame's name is forced empty: the engine reports the window
    name there, which must never match a frame selector.
    """

    def _convert(node, is_top: bool) -> FrameNode:
        frame = node.frame
        return FrameNode(
            id=str(frame.id_),
            name="" if is_top else (frame.name or ""),
            url=frame.url or "",
            children=[_convert(c, False) for c in (node.child_frames or [])],
        )

    return _convert(tree, True)


def resolve_frame(top: FrameNode, path: Sequence[FrameSelector]) -> Optional[FrameNode]:
    """Follow ``path`` from the top frame; None as soon as a step does not resolve."""
    node: Optional[FrameNode] = top
    for selector in path:
        if node is None:
            return None
        if isinstance(selector, ByIndex):
            if 0 <= selector.index < len(node.children):
                node = node.children[selector.index]
            else:
                node = None
        elif isinstance(selector, ByName):
            node = next((c for c in node.children if c.name == selector.name), None)
        else:
            node = None
    return node


def _parents(top: FrameNode) -> Dict[str, FrameNode]:
    parents: Dict[str, FrameNode] = {}
    for node in top.walk():
        for child in node.children:
            parents[child.id] = node
    return parents


def path_to_frame(
    top: FrameNode, frame_id: str
) -> Tuple[FocusSwitch, List[FrameSelector]]:
    """Build the selector path leading from the top frame down to ``frame_id``.

    Named frames are addressed by name, anonymous ones by sibling index.
    """
    nodes = {n.id: n for n in top.walk()}
    node = nodes.get(frame_id)
    if node is None:
        return FocusSwitch.UNREACHABLE, []
    parents = _parents(top)
    path: List[FrameSelector] = []
    while node.id != top.id:
        parent = parents.get(node.id)
        if parent is None:
            return FocusSwitch.UNREACHABLE, []
        if node.name:
            path.insert(0, ByName(node.name))
        else:
            index = next(
                (i for i, c in enumerate(parent.children) if c.id == node.id), None
            )
            if index is None:
                return FocusSwitch.UNREACHABLE, []
            path.insert(0, ByIndex(index))
        node = parent
    return FocusSwitch.SWITCHED, path


async def wait_for_focused_frame(
    surface,
    contexts: Mapping[str, int],
    *,
    timeout_seconds: float = pcfg.FOCUS_TIMEOUT_S,
    poll_interval_seconds: float = pcfg.FOCUS_POLL_S,
) -> Optional[str]:
    """Poll the engine for the focused frame; None when nothing gets focus in time."""
    start = time.perf_counter()
    while True:
        frame_id = await surface.focused_frame_id(contexts)
        if frame_id is not None:
            return frame_id
        if (time.perf_counter() - start) >= timeout_seconds:
            logger.debug("no focused frame after %.0f ms", timeout_seconds * 1000.0)
            return None
        await asyncio.sleep(poll_interval_seconds)
