from __future__ import annotations
from typing import Optional

from .config import pcfg
from .engine import Engine, Surface
from .errors import (
    ClipRectError,
    EvaluationError,
    FeatureNotImplemented,
    NoWindowError,
    PageClosedError,
    PageError,
    PageNotOpenError,
    RenderFormatError,
    UnknownEventError,
)
from .frames.locator import ByIndex, ByName, FocusSwitch
from .page import WebPage
from .telemetry import get_input_recorder


def create(engine: Optional[Engine] = None) -> WebPage:
    """Return a new, unopened page (``require('webpage').create()``)."""
    return WebPage(engine)


__all__ = [
    "create",
    "WebPage",
    "Engine",
    "Surface",
    "pcfg",
    "ByIndex",
    "ByName",
    "FocusSwitch",
    "get_input_recorder",
    "PageError",
    "PageNotOpenError",
    "PageClosedError",
    "NoWindowError",
    "ClipRectError",
    "RenderFormatError",
    "UnknownEventError",
    "FeatureNotImplemented",
    "EvaluationError",
]
