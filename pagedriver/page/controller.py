from __future__ import annotations
import asyncio
import logging
import os
from pathlib import Path as FSPath
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .. import render as render_exporter
from ..config import pcfg
from ..engine import Engine, Surface
from ..errors import (
    EvaluationError,
    FeatureNotImplemented,
    NoWindowError,
    PageClosedError,
    PageError,
    PageNotOpenError,
    UnknownEventError,
)
from ..frames.injection import script_tag_source
from ..frames.locator import (
    FocusSwitch,
    FrameNode,
    FrameSelector,
    coerce_selector,
    path_to_frame,
    resolve_frame,
    wait_for_focused_frame,
)
from ..frames.sandbox import FrameWindow, SandboxManager, function_call_source
from ..keyboard import KEY_CODES, KEY_EVENT_TYPES, Modifier, emit_key_events, plan_key_events
from ..mouse import MOUSE_EVENT_TYPES, emit_mouse_events, plan_mouse_events
from ..telemetry import get_input_recorder
from ..utils import maybe_await
from .bridge import NavigationBridge
from .events import _CAMEL, PageEvents, PageState
from .popup import PopupInterceptor

logger = logging.getLogger(__name__)


class _EventConstants:
    """page.event: modifier bits and key codes for send_event()."""

    modifiers = MappingProxyType(
        {
            "shift": Modifier.SHIFT,
            "ctrl": Modifier.CTRL,
            "alt": Modifier.ALT,
            "meta": Modifier.META,
            "keypad": Modifier.KEYPAD,
        }
    )
    key = MappingProxyType(KEY_CODES)


class WebPage(PageEvents):
    """Script-facing controller of one browsing surface."""

    # members kept for API parity that raise FeatureNotImplemented
    NOT_IMPLEMENTED = frozenset(
        {
            "cookies",
            "custom_headers",
            "add_cookie",
            "clear_cookies",
            "delete_cookie",
            "set_content",
            "set_frame_content",
            "upload_file",
            "open_url",
            "owns_pages",
            "get_page",
            "pages_window_name",
            "release",
            "scroll_position",
            "offline_storage_path",
            "offline_storage_quota",
            "on_file_picker",
        }
    )

    event = _EventConstants

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or Engine.default()
        self.state = PageState.UNOPENED
        self.navigation_locked = False
        self.capture_content: List[str] = []
        self.library_path = os.getcwd()
        self._surface: Optional[Surface] = None
        self._opening: Optional[asyncio.Future] = None
        self._bridge: Optional[NavigationBridge] = None
        self._settings: Dict[str, Any] = dict(pcfg.DEFAULT_SETTINGS)
        self._settings_snapshot: Optional[Dict[str, Any]] = None
        self._frame_path: List[FrameSelector] = []
        self._clip_rect: Optional[Dict[str, float]] = None
        self._children: List["WebPage"] = []
        self._sandboxes = SandboxManager()
        self._popups = PopupInterceptor(self)

    def __repr__(self) -> str:
        return f"<WebPage {self.state.value} {self.url!r}>"

    # --- state ---

    @property
    def surface(self) -> Optional[Surface]:
        return self._surface

    @property
    def sandboxes(self) -> SandboxManager:
        return self._sandboxes

    @property
    def pages(self) -> Sequence["WebPage"]:
        """Child pages opened by this page's content."""
        return tuple(self._children)

    @property
    def frame_path(self) -> Sequence[FrameSelector]:
        return tuple(self._frame_path)

    def _require_open(self) -> None:
        if self.state is not PageState.OPEN or self._surface is None:
            raise PageNotOpenError()

    @property
    def settings(self) -> Dict[str, Any]:
        return self._settings

    @settings.setter
    def settings(self, value: Mapping[str, Any]) -> None:
        self._settings = {**self._settings, **dict(value)}

    @property
    def clip_rect(self) -> Optional[Dict[str, float]]:
        return dict(self._clip_rect) if self._clip_rect is not None else None

    @clip_rect.setter
    def clip_rect(self, value: Any) -> None:
        self._clip_rect = render_exporter.validate_clip_rect(value)

    @property
    def url(self) -> str:
        if self._bridge is not None:
            return self._bridge.current_url
        return ""

    @classmethod
    def supports(cls, name: str) -> bool:
        """False for members that exist only to raise FeatureNotImplemented."""
        snake = _CAMEL.sub("_", name).lower()
        return snake not in cls.NOT_IMPLEMENTED

    # --- notifications from the bridge ---

    async def notify(self, event: str, *args: Any) -> Any:
        """Deliver an event to its handler; handler errors are logged, not raised."""
        try:
            return await self._fire(event, *args)
        except Exception:
            logger.error("on_%s handler failed", event, exc_info=True)
            return None

    async def notify_initialized(self) -> None:
        self._sandboxes.invalidate("initialized")
        await self.notify("initialized")

    async def notify_load_started(self, url: Optional[str], is_frame: bool) -> None:
        self._sandboxes.invalidate("load started")
        await self.notify("load_started", url, is_frame)

    async def notify_load_finished(self, status: str, url: Optional[str], is_frame: bool) -> None:
        self._sandboxes.invalidate("load finished")
        await self.notify("load_finished", status, url, is_frame)

    async def notify_url_changed(self, url: str) -> None:
        self._sandboxes.invalidate("url changed")
        await self.notify("url_changed", url)

    async def notify_callback(self, value: Any) -> Any:
        """Run on_callback; its exception propagates back to the page."""
        return await self._fire("callback", value)

    # --- lifecycle ---

    async def _attach_surface(self, surface: Surface, *, adopt: bool = False) -> None:
        """Take ownership of ``surface``; a page closed meanwhile releases it.

        With ``adopt`` the bridge holds its events until _resume_adopted_load():
        the surface may already be loading a document nobody asked for here.
        """
        if self.state is PageState.CLOSED:
            logger.debug("page closed before %s attached; releasing it", surface.target_id)
            await surface.close()
            return
        self._surface = surface
        surface.page = self
        self._bridge = NavigationBridge(self, surface)
        try:
            await self._bridge.attach(hold=adopt)
            self.engine.watch_opener(surface.target_id, self._popups.intercept)
            await self._apply_settings()
        except BaseException:
            await self._release_surface()
            if self.state is PageState.OPENING:
                self.state = PageState.UNOPENED
            raise
        if self.state is PageState.CLOSED:
            await self._release_surface()
            return
        self.state = PageState.OPEN
        await self.notify_initialized()

    async def _open_surface(
        self, acquire: Callable[[], Awaitable[Surface]], adopt: bool
    ) -> None:
        try:
            surface = await acquire()
        except BaseException:
            if self.state is PageState.OPENING:
                self.state = PageState.UNOPENED
            raise
        await self._attach_surface(surface, adopt=adopt)

    async def _ensure_surface(
        self, acquire: Callable[[], Awaitable[Surface]], *, adopt: bool = False
    ) -> None:
        """Bring up the page's one surface; concurrent callers share the allocation."""
        if self._opening is None or self._opening.done():
            self.state = PageState.OPENING
            self._opening = asyncio.ensure_future(self._open_surface(acquire, adopt))
        opening = self._opening
        try:
            await asyncio.shield(opening)
        finally:
            if self._opening is opening and opening.done():
                self._opening = None

    def _resume_adopted_load(self, url: str) -> None:
        if self._bridge is not None:
            self._bridge.release(url)

    async def _apply_settings(self) -> None:
        self._settings_snapshot = dict(self._settings)
        await self._surface.apply_settings(self._settings_snapshot)

    async def _release_surface(self) -> None:
        surface, bridge = self._surface, self._bridge
        self._surface = self._bridge = None
        if bridge is not None:
            await bridge.detach()
        if surface is not None:
            self.engine.unwatch_opener(surface.target_id)
            surface.page = None
            await surface.close()

    def _reserve_child(self) -> "WebPage":
        child = WebPage(self.engine)
        child.settings = self._settings
        child.library_path = self.library_path
        self._children.append(child)
        return child

    def _release_child(self, child: "WebPage") -> None:
        if child in self._children:
            self._children.remove(child)

    async def open(
        self, url: str, callback: Optional[Callable[[str], Any]] = None
    ) -> str:
        """Load ``url``; resolves to "success" or "fail" once the load settles.

        The first call allocates the surface; later calls navigate the same one.
        Calls made while it is still being allocated wait for it. A close()
        arriving before the surface is up resolves them "fail".
        """
        if self.state is PageState.CLOSED:
            raise PageClosedError()
        if self._surface is None:
            await self._ensure_surface(self.engine.open_surface)
            if self._surface is None:
                logger.debug("page closed before %s could load", url)
                if callback is not None:
                    await maybe_await(callback("fail"))
                return "fail"
        else:
            await self._apply_settings()
        return await self._load(
            url, "Other", lambda: self._surface.navigate(url), callback, wait=True
        )

    async def _load(
        self,
        url: str,
        nav_type: str,
        start: Callable[[], Awaitable[Any]],
        callback: Optional[Callable[[str], Any]] = None,
        *,
        wait: bool = False,
    ) -> Optional[str]:
        will_navigate = not self.navigation_locked
        await self.notify("navigation_requested", url, nav_type, will_navigate, True)
        if not will_navigate or self._bridge is None:
            logger.debug("load of %s swallowed (locked or closed)", url)
            if callback is not None:
                await maybe_await(callback("fail"))
            return "fail" if wait else None

        future = asyncio.get_running_loop().create_future() if wait else None
        self._bridge.begin_navigation(url, future, callback)
        try:
            error_text = await start()
            if error_text:
                logger.debug("engine reported %s for %s", error_text, url)
        except Exception:
            logger.debug("engine refused to load %s", url, exc_info=True)
            self._bridge.abort_navigation(url)
        if future is None:
            return None
        return await future

    async def close(self) -> None:
        """Release the surface. Closing twice is a no-op; child pages stay open.

        During OPENING the surface is released as soon as the engine hands it over.
        """
        if self.state is PageState.CLOSED:
            return
        self.state = PageState.CLOSED
        opening = self._opening
        if (
            opening is not None
            and not opening.done()
            and opening is not asyncio.current_task()
        ):
            await asyncio.wait([opening])
        surface, bridge = self._surface, self._bridge
        if surface is not None:
            if bridge is not None:
                await bridge.detach()
            self.engine.unwatch_opener(surface.target_id)
            await self.notify("closing", self)
        await self._release_surface()
        self._sandboxes.invalidate("close")
        self._frame_path.clear()

    # --- history ---

    async def reload(self) -> None:
        self._require_open()
        await self._load(self.url, "Reload", self._surface.reload)

    async def stop(self) -> None:
        self._require_open()
        await self._surface.stop()

    async def go(self, delta: int) -> None:
        """Move ``delta`` entries through history; out of range does nothing."""
        self._require_open()
        index, entries = await self._surface.history()
        target = index + int(delta)
        if target < 0 or target >= len(entries):
            return
        if target == index:
            await self.reload()
            return
        entry = entries[target]
        await self._load(
            entry.url,
            "BackOrForward",
            lambda: self._surface.goto_history_entry(entry.id_),
        )

    async def go_back(self) -> None:
        await self.go(-1)

    async def go_forward(self) -> None:
        await self.go(1)

    async def can_go_back(self) -> bool:
        self._require_open()
        index, _entries = await self._surface.history()
        return index > 0

    async def can_go_forward(self) -> bool:
        self._require_open()
        index, entries = await self._surface.history()
        return index < len(entries) - 1

    # --- frames ---

    async def _current_frame(self) -> Optional[FrameNode]:
        self._require_open()
        return resolve_frame(await self._surface.frame_tree(), self._frame_path)

    async def _current_window(self) -> Optional[FrameWindow]:
        node = await self._current_frame()
        if node is None:
            return None
        return self._bridge.windows.lookup(node.id)

    async def _eval_in_frame(self, expression: str, default: Any) -> Any:
        window = await self._current_window()
        if window is None:
            return default
        return await self._surface.evaluate(expression, context_id=window.context_id)

    async def _eval_in_top(self, expression: str, default: Any) -> Any:
        window = self._bridge.windows.lookup(self._bridge.main_frame_id)
        if window is None:
            return default
        return await self._surface.evaluate(expression, context_id=window.context_id)

    async def switch_to_frame(self, selector: Union[int, str, FrameSelector]) -> bool:
        """Descend into a child frame; the path is left unchanged if it does not resolve."""
        self._require_open()
        self._frame_path.append(coerce_selector(selector))
        if await self._current_frame() is None:
            self._frame_path.pop()
            return False
        return True

    switch_to_child_frame = switch_to_frame

    def switch_to_parent_frame(self) -> bool:
        if not self._frame_path:
            return False
        self._frame_path.pop()
        return True

    def switch_to_main_frame(self) -> None:
        self._frame_path.clear()

    async def switch_to_focused_frame(self) -> FocusSwitch:
        self._require_open()
        frame_id = await wait_for_focused_frame(
            self._surface, self._bridge.windows.contexts()
        )
        if frame_id is None:
            return FocusSwitch.NO_FOCUSED_WINDOW
        result, path = path_to_frame(await self._surface.frame_tree(), frame_id)
        if result is FocusSwitch.SWITCHED:
            self._frame_path = path
        return result

    async def frame_name(self) -> str:
        node = await self._current_frame()
        return node.name if node is not None else ""

    current_frame_name = frame_name

    async def frames_count(self) -> int:
        node = await self._current_frame()
        return len(node.children) if node is not None else 0

    child_frames_count = frames_count

    async def frames_name(self) -> List[str]:
        node = await self._current_frame()
        return [c.name for c in node.children] if node is not None else []

    child_frames_name = frames_name

    async def focused_frame_name(self) -> str:
        if self.state is not PageState.OPEN:
            return ""
        frame_id = await wait_for_focused_frame(
            self._surface, self._bridge.windows.contexts()
        )
        if frame_id is None:
            return ""
        tree = await self._surface.frame_tree()
        node = next((n for n in tree.walk() if n.id == frame_id), None)
        return node.name if node is not None else ""

    async def frame_url(self) -> str:
        return await self._eval_in_frame("location.href", "")

    async def frame_title(self) -> str:
        return await self._eval_in_frame("document.title", "")

    async def frame_content(self) -> str:
        return await self._eval_in_frame(_CONTENT_JS, "")

    async def frame_plain_text(self) -> str:
        return await self._eval_in_frame(_PLAIN_TEXT_JS, "")

    # --- content ---

    async def title(self) -> str:
        if self.state is not PageState.OPEN:
            return ""
        return await self._eval_in_top("document.title", "")

    async def content(self) -> str:
        self._require_open()
        return await self._eval_in_top(_CONTENT_JS, "")

    async def plain_text(self) -> str:
        self._require_open()
        return await self._eval_in_top(_PLAIN_TEXT_JS, "")

    async def window_name(self) -> Optional[str]:
        if self.state is not PageState.OPEN:
            return None
        return await self._eval_in_top("window.name", None)

    async def get_viewport_size(self) -> Dict[str, int]:
        if self.state is not PageState.OPEN:
            return {"width": 0, "height": 0}
        width, height = await self._surface.viewport_size()
        return {"width": width, "height": height}

    async def set_viewport_size(self, width: int, height: int) -> None:
        if self.state is not PageState.OPEN:
            return
        if not width or not height or width <= 0 or height <= 0:
            return
        await self._surface.set_viewport_size(width, height)

    async def get_zoom_factor(self) -> float:
        self._require_open()
        return self._surface.zoom

    async def set_zoom_factor(self, value: float) -> None:
        self._require_open()
        await self._surface.set_zoom(value)

    # --- script ---

    async def _evaluate_in_sandbox(
        self, source: str, file: str = pcfg.EVALUATE_SOURCE_URL
    ) -> Any:
        window = await self._current_window()
        if window is None:
            raise NoWindowError()
        try:
            return await self._sandboxes.run(self._surface, window, source, file)
        except EvaluationError as exc:
            if self.on_error is None:
                raise
            await self.notify("error", exc.message, exc.frames)
            return None

    async def evaluate(self, fn_source: str, *args: Any) -> Any:
        """Call a JS function (given as source text) in the current frame."""
        self._require_open()
        return await self._evaluate_in_sandbox(function_call_source(fn_source, args))

    async def evaluate_javascript(self, source: str) -> Any:
        self._require_open()
        return await self._evaluate_in_sandbox(source)

    def evaluate_async(self, fn_source: str, delay_ms: float = 0, *args: Any) -> asyncio.Task:
        """Schedule evaluate(); failures go to on_error, or the log."""
        self._require_open()

        async def _run() -> Any:
            if delay_ms:
                await asyncio.sleep(delay_ms / 1000.0)
            try:
                return await self.evaluate(fn_source, *args)
            except EvaluationError as exc:
                logger.warning("evaluate_async failed: %s", exc.message)
            except PageError as exc:
                logger.debug("evaluate_async dropped: %s", exc)
            return None

        return asyncio.create_task(_run())

    async def include_js(
        self, url: str, callback: Optional[Callable[[], Any]] = None
    ) -> Optional[asyncio.Task]:
        """Add a ``<script src=url>`` to the current frame as page-authored script.

        With a callback, returns the task that calls it once the script loaded.
        """
        self._require_open()
        window = await self._current_window()
        if window is None:
            raise NoWindowError()
        source = script_tag_source(url=url)
        if callback is None:
            await self._surface.evaluate(source, context_id=window.context_id)
            return None

        async def _wait_loaded() -> None:
            try:
                await self._surface.evaluate(
                    source, context_id=window.context_id, await_promise=True
                )
            except EvaluationError as exc:
                logger.warning("include_js(%s) failed: %s", url, exc.message)
                return
            await maybe_await(callback())

        return asyncio.create_task(_wait_loaded())

    async def inject_js(self, filename: str) -> bool:
        """Evaluate a local script file; looked up in the cwd, then library_path."""
        self._require_open()
        for base in (os.getcwd(), self.library_path):
            path = FSPath(base) / filename
            if path.is_file():
                break
        else:
            logger.warning("Can't open '%s'", filename)
            return False
        source = await asyncio.to_thread(path.read_text, encoding="utf-8")
        await self._evaluate_in_sandbox(source, file=str(filename))
        return True

    # --- input ---

    async def send_event(
        self,
        event_type: str,
        arg1: Any = None,
        arg2: Any = None,
        button: Union[int, str] = "left",
        modifier: int = 0,
    ) -> None:
        self._require_open()
        kind = str(event_type).lower()
        if kind in KEY_EVENT_TYPES:
            events = plan_key_events(kind, arg1 if arg1 is not None else "", modifier)
            emit = emit_key_events
        elif kind in MOUSE_EVENT_TYPES:
            events = plan_mouse_events(kind, arg1, arg2, button, modifier)
            emit = emit_mouse_events
        else:
            raise UnknownEventError(event_type)
        await self._surface.focus()
        if events:
            await emit(self._surface, events, get_input_recorder(self))

    # --- rendering ---

    async def render_bytes(self, format: str = "png", ratio: Optional[float] = None) -> bytes:
        self._require_open()
        return await render_exporter.capture(self._surface, self._clip_rect, format, ratio)

    async def render_base64(self, format: str = "png", ratio: Optional[float] = None) -> str:
        self._require_open()
        return await render_exporter.capture_base64(
            self._surface, self._clip_rect, format, ratio
        )

    async def render(self, path: str, ratio: Optional[float] = None) -> str:
        self._require_open()
        return await render_exporter.capture_to_file(
            self._surface, path, self._clip_rect, ratio
        )

    # --- not implemented ---

    @property
    def cookies(self):
        raise FeatureNotImplemented("cookies")

    @cookies.setter
    def cookies(self, value):
        raise FeatureNotImplemented("cookies")

    @property
    def custom_headers(self):
        raise FeatureNotImplemented("customHeaders")

    @custom_headers.setter
    def custom_headers(self, value):
        raise FeatureNotImplemented("customHeaders")

    @property
    def owns_pages(self):
        raise FeatureNotImplemented("ownsPages")

    @property
    def pages_window_name(self):
        raise FeatureNotImplemented("pagesWindowName")

    @property
    def scroll_position(self):
        raise FeatureNotImplemented("scrollPosition")

    @scroll_position.setter
    def scroll_position(self, value):
        raise FeatureNotImplemented("scrollPosition")

    @property
    def offline_storage_path(self):
        raise FeatureNotImplemented("offlineStoragePath")

    @property
    def offline_storage_quota(self):
        raise FeatureNotImplemented("offlineStorageQuota")

    @property
    def on_file_picker(self):
        raise FeatureNotImplemented("onFilePicker")

    @on_file_picker.setter
    def on_file_picker(self, value):
        raise FeatureNotImplemented("onFilePicker")

    def add_cookie(self, cookie):
        raise FeatureNotImplemented("addCookie")

    def clear_cookies(self):
        raise FeatureNotImplemented("clearCookies")

    def delete_cookie(self, name):
        raise FeatureNotImplemented("deleteCookie")

    def set_content(self, content, url=None):
        raise FeatureNotImplemented("setContent")

    def set_frame_content(self, content):
        raise FeatureNotImplemented("frameContent setter")

    def upload_file(self, selector, filename):
        raise FeatureNotImplemented("uploadFile")

    def open_url(self, url, http_conf=None, settings=None):
        raise FeatureNotImplemented("openUrl")

    def get_page(self, window_name):
        raise FeatureNotImplemented("getPage")

    def release(self):
        raise FeatureNotImplemented("release")


_CONTENT_JS = (
    "(document.doctype ? new XMLSerializer().serializeToString(document.doctype) + '\\n' : '')"
    " + (document.documentElement ? document.documentElement.outerHTML : '')"
)
_PLAIN_TEXT_JS = "document.body ? document.body.innerText : ''"
