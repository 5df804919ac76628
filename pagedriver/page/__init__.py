from .controller import WebPage
from .events import EVENTS, NAVIGATION_TYPES, PageEvents, PageState
from .popup import PopupInterceptor

__all__ = [
    "WebPage",
    "PageEvents",
    "PageState",
    "PopupInterceptor",
    "EVENTS",
    "NAVIGATION_TYPES",
]
