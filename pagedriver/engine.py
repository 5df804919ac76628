from __future__ import annotations
import asyncio
import base64
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import zendriver
from zendriver import cdp
from zendriver.core.connection import ProtocolException

from .config import pcfg
from .errors import EvaluationError
from .frames.locator import FrameNode, frame_tree_from_cdp
from .utils import maybe_await, normalize_exception_details

logger = logging.getLogger(__name__)

# true only in the innermost focused document
_FOCUSED_DOCUMENT_JS = (
    "document.hasFocus() && !(document.activeElement &&"
    " /^i?frame$/i.test(document.activeElement.tagName || ''))"
)


class Surface:
    """One browsing surface: a zendriver Tab and the CDP calls made on it."""

    def __init__(self, tab, engine: Optional["Engine"] = None):
        self.tab = tab
        self.engine = engine
        self.page = None  # owning WebPage, set while attached
        self._closed = False
        self._zoom = 1.0
        self._viewport: Optional[Tuple[int, int]] = None

    def __repr__(self) -> str:
        return f"<Surface {self.target_id} {self.url!r}>"

    @property
    def target_id(self) -> str:
        return str(self.tab.target_id)

    @property
    def url(self) -> str:
        return self.tab.url or ""

    @property
    def closed(self) -> bool:
        return self._closed

    # --- events ---

    def add_handler(self, event_type, handler) -> None:
        self.tab.add_handler(event_type, handler)

    def remove_handlers(self, event_type=None, handler=None) -> None:
        self.tab.remove_handlers(event_type, handler)

    async def send(self, command):
        return await self.tab.send(command)

    async def enable(self) -> None:
        await self.send(cdp.page.enable())
        await self.send(cdp.network.enable())
        await self.send(cdp.runtime.enable())
        # evaluated code goes through eval(); the page's CSP must not veto it
        await self.send(cdp.page.set_bypass_csp(True))

    # --- navigation ---

    async def navigate(self, url: str) -> Optional[str]:
        """Start loading ``url``; returns the engine's immediate error text, if any."""
        _frame_id, _loader_id, error_text, *_ = await self.send(cdp.page.navigate(url))
        return error_text

    async def reload(self) -> None:
        await self.send(cdp.page.reload())

    async def stop(self) -> None:
        await self.send(cdp.page.stop_loading())

    async def history(self) -> Tuple[int, List[Any]]:
        index, entries = await self.send(cdp.page.get_navigation_history())
        return int(index), list(entries)

    async def goto_history_entry(self, entry_id: int) -> None:
        await self.send(cdp.page.navigate_to_history_entry(entry_id))

    async def frame_tree(self) -> FrameNode:
        return frame_tree_from_cdp(await self.send(cdp.page.get_frame_tree()))

    # --- script ---

    async def evaluate(
        self,
        expression: str,
        context_id: Optional[int] = None,
        await_promise: bool = False,
    ) -> Any:
        """Evaluate and return the value; raises EvaluationError when the script throws."""
        remote, details = await self.send(
            cdp.runtime.evaluate(
                expression=expression,
                context_id=(
                    cdp.runtime.ExecutionContextId(context_id)
                    if context_id is not None
                    else None
                ),
                return_by_value=True,
                await_promise=await_promise,
                user_gesture=True,
                allow_unsafe_eval_blocked_by_csp=True,
            )
        )
        if details is not None:
            message, frames = normalize_exception_details(details)
            raise EvaluationError(message, frames)
        return getattr(remote, "value", None)

    async def response_body(self, request_id: str) -> str:
        body, is_base64 = await self.send(
            cdp.network.get_response_body(cdp.network.RequestId(request_id))
        )
        if is_base64:
            return base64.b64decode(body).decode("utf-8", "replace")
        return body

    async def add_init_script(self, source: str) -> None:
        await self.send(cdp.page.add_script_to_evaluate_on_new_document(source))

    async def add_binding(self, name: str) -> None:
        await self.send(cdp.runtime.add_binding(name))

    async def focused_frame_id(self, contexts: Mapping[str, int]) -> Optional[str]:
        for frame_id, context_id in list(contexts.items()):
            try:
                if await self.evaluate(_FOCUSED_DOCUMENT_JS, context_id=context_id):
                    return frame_id
            except (EvaluationError, ProtocolException):
                # context went away between listing and asking
                continue
        return None

    # --- input ---

    async def dispatch_key(self, type_: str, **kwargs) -> None:
        await self.send(cdp.input_.dispatch_key_event(type_=type_, **kwargs))

    async def dispatch_mouse(
        self,
        type_: str,
        x: float,
        y: float,
        button: str = "none",
        click_count: int = 0,
        modifiers: int = 0,
    ) -> None:
        await self.send(
            cdp.input_.dispatch_mouse_event(
                type_=type_,
                x=x,
                y=y,
                button=cdp.input_.MouseButton(button),
                click_count=click_count,
                modifiers=modifiers,
            )
        )

    async def focus(self) -> None:
        await self.send(cdp.page.bring_to_front())
        await self.evaluate("window.focus()")

    # --- rendering and viewport ---

    async def layout_size(self) -> Dict[str, Tuple[int, int]]:
        metrics = await self.send(cdp.page.get_layout_metrics())
        viewport, content = metrics[3], metrics[5]
        return {
            "viewport": (int(viewport.client_width), int(viewport.client_height)),
            "content": (int(content.width), int(content.height)),
        }

    async def capture_png(
        self, clip: Optional[Mapping[str, float]] = None, scale: float = 1.0
    ) -> bytes:
        if clip is None:
            width, height = (await self.layout_size())["content"]
            viewport = cdp.page.Viewport(
                x=0, y=0, width=width, height=height, scale=scale
            )
        else:
            viewport = cdp.page.Viewport(
                x=clip["left"],
                y=clip["top"],
                width=clip["width"],
                height=clip["height"],
                scale=scale,
            )
        data = await self.send(
            cdp.page.capture_screenshot(
                format_="png", clip=viewport, capture_beyond_viewport=True
            )
        )
        return base64.b64decode(data)

    async def viewport_size(self) -> Tuple[int, int]:
        if self._viewport is not None:
            return self._viewport
        return (await self.layout_size())["viewport"]

    async def set_viewport_size(self, width: int, height: int) -> None:
        await self.send(
            cdp.emulation.set_device_metrics_override(
                width=int(width), height=int(height), device_scale_factor=0, mobile=False
            )
        )
        self._viewport = (int(width), int(height))

    @property
    def zoom(self) -> float:
        return self._zoom

    async def set_zoom(self, value: float) -> None:
        await self.send(cdp.emulation.set_page_scale_factor(float(value)))
        self._zoom = float(value)

    # --- dialogs and settings ---

    async def answer_dialog(self, accept: bool, text: Optional[str] = None) -> None:
        await self.send(cdp.page.handle_java_script_dialog(accept, prompt_text=text))

    async def apply_settings(self, settings: Mapping[str, Any]) -> None:
        """Apply a settings snapshot. Every switch is set, so nothing from an
        earlier snapshot survives; an empty user agent drops the override."""
        await self.send(
            cdp.emulation.set_user_agent_override(user_agent=settings.get("userAgent") or "")
        )
        await self.send(
            cdp.emulation.set_script_execution_disabled(
                not settings.get("javascriptEnabled", True)
            )
        )
        blocked = [] if settings.get("loadImages", True) else list(pcfg.IMAGE_URL_PATTERNS)
        await self.send(cdp.network.set_blocked_ur_ls(urls=blocked))
        ignored = [
            key
            for key in pcfg.INERT_SETTINGS
            if key in settings and settings[key] != pcfg.DEFAULT_SETTINGS.get(key)
        ]
        if ignored:
            logger.debug("settings without engine support left as-is: %s", ", ".join(ignored))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.engine is not None:
            await self.engine.close_surface(self)


class Engine:
    """Owns the zendriver Browser and hands out browsing surfaces."""

    _default: Optional["Engine"] = None

    def __init__(
        self,
        *,
        headless: bool = pcfg.HEADLESS,
        browser_args=pcfg.BROWSER_ARGS,
        sandbox: bool = pcfg.SANDBOX,
    ):
        self.headless = headless
        self.browser_args = list(browser_args)
        self.sandbox = sandbox
        self.browser = None
        self._start_lock: Optional[asyncio.Lock] = None
        self._openers: Dict[str, Callable[[Any], Any]] = {}

    @classmethod
    def default(cls) -> "Engine":
        if cls._default is None:
            cls._default = cls()
        return cls._default

    async def ensure_started(self):
        if self._start_lock is None:
            self._start_lock = asyncio.Lock()
        async with self._start_lock:
            if self.browser is None:
                logger.info(
                    "starting browser (headless=%s, sandbox=%s)",
                    self.headless,
                    self.sandbox,
                )
                self.browser = await zendriver.start(
                    headless=self.headless,
                    browser_args=self.browser_args,
                    sandbox=self.sandbox,
                )
                self.browser.connection.add_handler(
                    cdp.target.TargetCreated, self._on_target_created
                )
        return self.browser

    async def open_surface(self) -> Surface:
        browser = await self.ensure_started()
        target_id = await browser.connection.send(
            cdp.target.create_target("about:blank", new_window=True)
        )
        return await self.adopt_surface(str(target_id))

    async def adopt_surface(
        self, target_id: str, timeout: float = pcfg.SURFACE_TIMEOUT_S
    ) -> Surface:
        """Wait until the browser exposes a tab for ``target_id`` and wrap it."""
        browser = await self.ensure_started()
        start = time.perf_counter()
        while True:
            for tab in browser.tabs:
                if str(tab.target_id) == target_id:
                    return Surface(tab, self)
            if (time.perf_counter() - start) >= timeout:
                raise asyncio.TimeoutError(f"target {target_id} never attached")
            await browser.update_targets()
            await asyncio.sleep(0.05)

    def watch_opener(self, target_id: str, interceptor: Callable[[Any], Any]) -> None:
        """Route targets opened by ``target_id`` to ``interceptor(target_info)``."""
        self._openers[target_id] = interceptor

    def unwatch_opener(self, target_id: str) -> None:
        self._openers.pop(target_id, None)

    async def _on_target_created(self, event) -> None:
        info = event.target_info
        opener = getattr(info, "opener_id", None)
        interceptor = self._openers.get(str(opener)) if opener else None
        if interceptor is None:
            return
        try:
            await maybe_await(interceptor(info))
        except Exception:
            logger.warning(
                "popup interception failed for %s", info.target_id, exc_info=True
            )

    async def close_surface(self, surface: Surface) -> None:
        self.unwatch_opener(surface.target_id)
        try:
            await surface.tab.close()
        except Exception:
            logger.warning("failed to close surface %s", surface.target_id, exc_info=True)

    async def stop(self) -> None:
        if self.browser is None:
            return
        self._openers.clear()
        await self.browser.stop()
        self.browser = None
        logger.info("browser stopped")
