"""In-memory stand-ins for the browser side: a Surface that records commands
and replays protocol events, and an Engine that hands such surfaces out."""
from __future__ import annotations
import asyncio
import io
import itertools
from types import SimpleNamespace as NS
from typing import Any, Dict, List, Optional

from PIL import Image
from zendriver import cdp

from pagedriver.config import pcfg
from pagedriver.engine import Engine, Surface
from pagedriver.errors import EvaluationError
from pagedriver.frames.locator import FrameNode

MAIN_FRAME = "main"

_target_ids = itertools.count(1)
_context_ids = itertools.count(100)


class FakeTab:
    def __init__(self, target_id: str):
        self.target_id = target_id
        self.url = "about:blank"


class FakeSurface(Surface):
    """Surface whose engine is a script of protocol events.

    navigate() plays a whole document load unless ``auto_load`` is off;
    URLs listed in ``fail_urls`` play a failed load instead.
    """

    def __init__(self, engine=None, target_id: Optional[str] = None):
        super().__init__(FakeTab(target_id or f"target-{next(_target_ids)}"), engine)
        self.handlers: Dict[type, List[Any]] = {}
        self.commands: List[tuple] = []
        self.evaluated: List[tuple] = []
        self.scripts: Dict[str, Any] = {}
        self.eval_errors: Dict[str, EvaluationError] = {}
        self.children: List[FrameNode] = []
        self.focused: Optional[str] = None
        self.auto_load = True
        self.fail_urls: set = set()
        self.entries: List[Any] = []
        self.index = -1
        self.content_size = (120, 90)
        self.default_viewport = (400, 300)
        self._requests = itertools.count(1)

    # --- events ---

    def add_handler(self, event_type, handler) -> None:
        self.handlers.setdefault(event_type, []).append(handler)

    def remove_handlers(self, event_type=None, handler=None) -> None:
        if event_type is None:
            self.handlers.clear()
            return
        if handler is None:
            self.handlers.pop(event_type, None)
            return
        listeners = self.handlers.get(event_type, [])
        if handler in listeners:
            listeners.remove(handler)

    async def emit(self, event_type, **fields) -> None:
        event = NS(**fields)
        for handler in list(self.handlers.get(event_type, [])):
            await handler(event)

    async def flush(self) -> None:
        """Let pending tasks run, then wait for the page's bridge to drain."""
        for _ in range(5):
            await asyncio.sleep(0)
        if self.page is not None and self.page._bridge is not None:
            await self.page._bridge.flush()

    # --- scripted engine behaviour ---

    async def new_context(self, frame_id: str = MAIN_FRAME) -> int:
        context_id = next(_context_ids)
        await self.emit(
            cdp.runtime.ExecutionContextCreated,
            context=NS(id_=context_id, aux_data={"isDefault": True, "frameId": frame_id}),
        )
        return context_id

    async def play_load(self, url: str) -> None:
        request_id = f"req-{next(self._requests)}"
        await self.emit(cdp.page.FrameStartedLoading, frame_id=MAIN_FRAME)
        await self.emit(
            cdp.network.RequestWillBeSent,
            request_id=request_id,
            loader_id=request_id,
            request=NS(url=url, method="GET", headers={}),
            redirect_response=None,
            type_="Document",
            frame_id=MAIN_FRAME,
        )
        if url in self.fail_urls:
            await self.emit(
                cdp.network.LoadingFailed,
                request_id=request_id,
                error_text="net::ERR_NAME_NOT_RESOLVED",
                canceled=False,
            )
            await self.emit(
                cdp.page.FrameNavigated,
                frame=NS(
                    id_=MAIN_FRAME,
                    parent_id=None,
                    url="chrome-error://chromewebdata/",
                    url_fragment=None,
                    unreachable_url=url,
                ),
            )
            await self.emit(cdp.page.FrameStoppedLoading, frame_id=MAIN_FRAME)
            return
        await self.emit(
            cdp.network.ResponseReceived,
            request_id=request_id,
            response=response(url),
        )
        await self.emit(
            cdp.network.LoadingFinished, request_id=request_id, encoded_data_length=42
        )
        self.tab.url = url
        await self.emit(
            cdp.page.FrameNavigated,
            frame=NS(
                id_=MAIN_FRAME,
                parent_id=None,
                url=url,
                url_fragment=None,
                unreachable_url=None,
            ),
        )
        await self.new_context(MAIN_FRAME)
        await self.emit(cdp.page.LoadEventFired, timestamp=0.0)
        await self.emit(cdp.page.FrameStoppedLoading, frame_id=MAIN_FRAME)

    # --- Surface API ---

    async def send(self, command):
        raise AssertionError("fake surfaces never talk to a browser")

    async def enable(self) -> None:
        self.commands.append(("enable",))

    async def navigate(self, url: str) -> Optional[str]:
        self.commands.append(("navigate", url))
        self.entries = self.entries[: self.index + 1] + [NS(id_=len(self.entries) + 1, url=url)]
        self.index = len(self.entries) - 1
        if self.auto_load:
            asyncio.get_running_loop().create_task(self.play_load(url))
        return None

    async def reload(self) -> None:
        self.commands.append(("reload",))
        if self.auto_load:
            asyncio.get_running_loop().create_task(self.play_load(self.tab.url))

    async def stop(self) -> None:
        self.commands.append(("stop",))

    async def history(self):
        return self.index, list(self.entries)

    async def goto_history_entry(self, entry_id: int) -> None:
        self.commands.append(("history", entry_id))
        for i, entry in enumerate(self.entries):
            if entry.id_ == entry_id:
                self.index = i
                if self.auto_load:
                    asyncio.get_running_loop().create_task(self.play_load(entry.url))

    async def frame_tree(self) -> FrameNode:
        return FrameNode(MAIN_FRAME, "", self.tab.url, list(self.children))

    async def evaluate(self, expression, context_id=None, await_promise=False):
        self.evaluated.append((expression, context_id))
        for needle, error in self.eval_errors.items():
            if needle in expression:
                raise error
        for needle, value in self.scripts.items():
            if needle in expression:
                return value(expression, context_id) if callable(value) else value
        return None

    async def response_body(self, request_id: str) -> str:
        return "<html>body of %s</html>" % request_id

    async def add_init_script(self, source: str) -> None:
        self.commands.append(("init_script",))

    async def add_binding(self, name: str) -> None:
        self.commands.append(("binding", name))

    async def focused_frame_id(self, contexts) -> Optional[str]:
        return self.focused if self.focused in contexts else None

    async def dispatch_key(self, type_: str, **kwargs) -> None:
        self.commands.append(("key", type_, kwargs))

    async def dispatch_mouse(self, type_, x, y, button="none", click_count=0, modifiers=0):
        self.commands.append(("mouse", type_, x, y, button, click_count, modifiers))

    async def focus(self) -> None:
        self.commands.append(("focus",))

    async def layout_size(self):
        return {"viewport": self.default_viewport, "content": self.content_size}

    async def capture_png(self, clip=None, scale: float = 1.0) -> bytes:
        if clip is None:
            width, height = self.content_size
        else:
            width, height = clip["width"], clip["height"]
        size = (max(1, int(width * scale)), max(1, int(height * scale)))
        out = io.BytesIO()
        Image.new("RGBA", size, (200, 30, 30, 255)).save(out, format="PNG")
        return out.getvalue()

    async def set_viewport_size(self, width: int, height: int) -> None:
        self.commands.append(("viewport", width, height))
        self._viewport = (int(width), int(height))

    async def set_zoom(self, value: float) -> None:
        self._zoom = float(value)

    async def answer_dialog(self, accept: bool, text: Optional[str] = None) -> None:
        self.commands.append(("dialog", accept, text))

    async def apply_settings(self, settings) -> None:
        self.commands.append(("settings", dict(settings)))

    def sent(self, name: str) -> List[tuple]:
        return [c for c in self.commands if c[0] == name]


class FakeEngine(Engine):
    """Engine without a browser; popup targets are parked in ``pending``."""

    def __init__(self):
        super().__init__()
        self.open_delay = 0.0
        self.open_error: Optional[Exception] = None
        self.surfaces: List[FakeSurface] = []
        self.pending: Dict[str, FakeSurface] = {}
        self.closed: List[FakeSurface] = []

    async def ensure_started(self):
        return None

    async def open_surface(self) -> Surface:
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        surface = FakeSurface(self)
        self.surfaces.append(surface)
        return surface

    async def adopt_surface(self, target_id: str, timeout: float = pcfg.SURFACE_TIMEOUT_S):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while target_id not in self.pending:
            if loop.time() >= deadline:
                raise asyncio.TimeoutError(target_id)
            await asyncio.sleep(0.01)
        surface = self.pending.pop(target_id)
        self.surfaces.append(surface)
        return surface

    async def close_surface(self, surface: Surface) -> None:
        self.unwatch_opener(surface.target_id)
        self.closed.append(surface)

    async def open_popup(
        self, opener: FakeSurface, url: str = "about:blank", *, ready=True, surface=None
    ):
        """Announce a window opened by ``opener``'s content.

        ``surface`` stands in for the popup's tab, e.g. one with scripted state.
        """
        target_id = surface.target_id if surface is not None else f"popup-{next(_target_ids)}"
        if ready:
            self.pending[target_id] = surface or FakeSurface(self, target_id)
        info = NS(target_id=target_id, opener_id=opener.target_id, type_="page", url=url)
        await self._on_target_created(NS(target_info=info))
        return target_id


def response(url: str, status: int = 200, mime_type: str = "text/html", headers=None):
    return NS(
        url=url,
        status=status,
        status_text="OK",
        headers=headers if headers is not None else {"Content-Length": "42"},
        mime_type=mime_type,
    )


class CdpTab:
    """A zendriver Tab stand-in that runs real cdp command generators.

    Each command's request is recorded; the reply for its method comes from
    ``replies`` (a dict, a callable taking the params, or an exception).
    """

    def __init__(self, target_id: str = "tab-1", url: str = "about:blank"):
        self.target_id = target_id
        self.url = url
        self.replies: Dict[str, Any] = {}
        self.requests: List[dict] = []
        self.handlers: Dict[type, List[Any]] = {}
        self.closed = False

    async def send(self, command):
        request = next(command)
        self.requests.append(request)
        reply = self.replies.get(request["method"], {})
        if callable(reply):
            reply = reply(request.get("params", {}))
        if isinstance(reply, Exception):
            raise reply
        try:
            command.send(reply)
        except StopIteration as done:
            return done.value
        raise AssertionError(f"{request['method']} expected a single reply")

    def methods(self) -> List[str]:
        return [r["method"] for r in self.requests]

    def params(self, method: str) -> List[dict]:
        return [r.get("params", {}) for r in self.requests if r["method"] == method]

    def add_handler(self, event_type, handler) -> None:
        self.handlers.setdefault(event_type, []).append(handler)

    def remove_handlers(self, event_type=None, handler=None) -> None:
        if event_type is not None and handler in self.handlers.get(event_type, []):
            self.handlers[event_type].remove(handler)

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """Just enough of zendriver's Browser for Engine.adopt_surface()."""

    def __init__(self, tabs=()):
        self.tabs = list(tabs)
        self.updates = 0

    async def update_targets(self) -> None:
        self.updates += 1
