from .locator import ByIndex, ByName, FocusSwitch, FrameNode, coerce_selector
from .sandbox import FrameWindow, SandboxManager, WindowRegistry

__all__ = [
    "ByIndex",
    "ByName",
    "FocusSwitch",
    "FrameNode",
    "FrameWindow",
    "SandboxManager",
    "WindowRegistry",
    "coerce_selector",
]
