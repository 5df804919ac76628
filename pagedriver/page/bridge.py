"""Translates engine protocol events into WebPage notifications.

Engine events arrive as independent tasks; the bridge queues them and a single
pump task handles them one at a time, so each navigation is seen as

    url_changed -> load_started -> resources -> initialized -> load_finished

Dialogs and callPhantom() calls bypass the queue: page script is blocked
while they are pending, and a handler awaiting script must not wait on the
pump.
"""
from __future__ import annotations
import asyncio
import contextlib
import itertools
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from zendriver import cdp

from ..config import pcfg
from ..frames.injection import (
    callback_bridge_source,
    script_tag_source,
    settle_callback_source,
)
from ..frames.sandbox import WindowRegistry
from ..utils import enum_value, maybe_await, normalize_exception_details
from .descriptors import (
    failed_response_descriptor,
    request_descriptor,
    response_descriptor,
)

logger = logging.getLogger(__name__)

_DOCUMENT_STATE_JS = "[location.href, document.readyState]"

_REASONS = {
    "anchorClick": "LinkClicked",
    "formSubmissionGet": "FormSubmitted",
    "formSubmissionPost": "FormSubmitted",
    "reload": "Reload",
    "httpHeaderRefresh": "Other",
    "metaTagRefresh": "Other",
    "scriptInitiated": "Other",
    "initialFrameNavigation": "Other",
    "pageBlockInterstitial": "Other",
    "other": "Other",
}


@dataclass
class NavigationStarted:
    """Queued by the controller when it starts a load itself (open, reload, history)."""

    url: str
    future: Optional[asyncio.Future] = None
    callback: Optional[Callable[[str], Any]] = None


@dataclass
class NavigationAborted:
    """Queued when the engine refused to start a controller-driven load."""

    url: str


@dataclass
class _Navigation:
    url: Optional[str] = None
    settled: bool = True
    engine_started: bool = False
    future: Optional[asyncio.Future] = None
    callback: Optional[Callable[[str], Any]] = None
    document_request_id: Optional[str] = None
    document_resource_id: Optional[int] = None


@dataclass
class _Resource:
    id: int
    url: str
    referrer: str = ""
    response: Any = None


@dataclass
class _FrameState:
    url: str = ""
    announced: bool = False


class NavigationBridge:
    """One listener set per surface; reused by every open() on that surface."""

    def __init__(self, page, surface):
        self.page = page
        self.surface = surface
        self.windows = WindowRegistry()
        self.main_frame_id: Optional[str] = None
        self.current_url: str = ""
        self._nav = _Navigation()
        self._absorbing = False
        self._pending_urls: Dict[str, str] = {}
        self._frames: Dict[str, _FrameState] = {}
        self._requests: Dict[str, _Resource] = {}
        self._resource_ids = itertools.count(1)
        self._handlers: List[Any] = []
        self._queue: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self.attached = False

        self._routes: Dict[type, Callable[[Any], Any]] = {
            cdp.page.FrameRequestedNavigation: self._on_frame_requested_navigation,
            cdp.page.FrameStartedLoading: self._on_frame_started_loading,
            cdp.page.FrameNavigated: self._on_frame_navigated,
            cdp.page.NavigatedWithinDocument: self._on_navigated_within_document,
            cdp.page.FrameStoppedLoading: self._on_frame_stopped_loading,
            cdp.page.LoadEventFired: self._on_load_event_fired,
            cdp.network.RequestWillBeSent: self._on_request_will_be_sent,
            cdp.network.ResponseReceived: self._on_response_received,
            cdp.network.LoadingFinished: self._on_loading_finished,
            cdp.network.LoadingFailed: self._on_loading_failed,
            cdp.runtime.ExecutionContextCreated: self._on_context_created,
            cdp.runtime.ExecutionContextDestroyed: self._on_context_destroyed,
            cdp.runtime.ExecutionContextsCleared: self._on_contexts_cleared,
            cdp.runtime.ConsoleAPICalled: self._on_console_api_called,
            cdp.runtime.ExceptionThrown: self._on_exception_thrown,
            NavigationStarted: self._on_navigation_started,
            NavigationAborted: self._on_navigation_aborted,
        }
        self._direct: Dict[type, Callable[[Any], Any]] = {
            cdp.page.JavascriptDialogOpening: self._on_dialog_opening,
            cdp.runtime.BindingCalled: self._on_binding_called,
        }

    # --- lifecycle ---

    def _make_handler(self, event_type: type):
        async def handler(event) -> None:
            if self._queue is not None:
                self._queue.put_nowait((event_type, event))

        return handler

    def _make_direct_handler(self, event_type: type):
        route = self._direct[event_type]

        async def handler(event) -> None:
            if not self.attached:
                return
            try:
                await route(event)
            except Exception:
                logger.error("%s handler failed", event_type.__name__, exc_info=True)

        return handler

    async def attach(self, *, hold: bool = False) -> None:
        """Register every listener. With ``hold`` events queue up unhandled
        until release()."""
        if self.attached:
            return
        self._queue = asyncio.Queue()
        for event_type in self._routes:
            if event_type in (NavigationStarted, NavigationAborted):
                continue
            handler = self._make_handler(event_type)
            self.surface.add_handler(event_type, handler)
            self._handlers.append((event_type, handler))
        for event_type in self._direct:
            handler = self._make_direct_handler(event_type)
            self.surface.add_handler(event_type, handler)
            self._handlers.append((event_type, handler))
        self.attached = True
        if not hold:
            self._pump_task = asyncio.create_task(self._pump())

        await self.surface.enable()
        tree = await self.surface.frame_tree()
        self.main_frame_id = tree.id
        self.current_url = tree.url or self.surface.url
        await self.surface.add_binding(pcfg.CALLBACK_BINDING)
        await self.surface.add_init_script(callback_bridge_source())
        await self.surface.evaluate(script_tag_source(callback_bridge_source()))
        if not hold:
            await self.flush()
        logger.debug("bridge attached to %s", self.surface.target_id)

    async def detach(self) -> None:
        """Unregister every listener; a pending open() resolves "fail"."""
        if not self.attached:
            return
        self.attached = False
        for event_type, handler in self._handlers:
            self.surface.remove_handlers(event_type, handler)
        self._handlers.clear()
        task, self._pump_task = self._pump_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._queue = None
        self.windows.clear()
        nav = self._nav
        future, callback = nav.future, nav.callback
        nav.future = nav.callback = None
        nav.settled = True
        if future is not None and not future.done():
            await self._run_open_callback(callback, "fail")
            future.set_result("fail")
        logger.debug("bridge detached from %s", self.surface.target_id)

    def release(self, url: str = "") -> None:
        """Start handling the events of a held bridge.

        The surface's first document (``url``) is taken over as an
        engine-driven navigation before any queued event is handled.
        """
        if not self.attached or self._pump_task is not None:
            return
        self._pump_task = asyncio.create_task(self._pump(adopted_url=url))

    async def _pump(self, adopted_url: Optional[str] = None) -> None:
        queue = self._queue
        if adopted_url is not None:
            try:
                await self._adopt_load(adopted_url)
            except Exception:
                logger.error("adopting the load of %s failed", adopted_url, exc_info=True)
        while self.attached:
            event_type, event = await queue.get()
            try:
                await self._routes[event_type](event)
            except Exception:
                logger.error("%s handler failed", event_type.__name__, exc_info=True)
            finally:
                queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued engine event has been handled; no-op while held."""
        if self._queue is not None and self._pump_task is not None:
            await self._queue.join()

    # --- controller-driven navigation ---

    def begin_navigation(self, url: str, future=None, callback=None) -> None:
        self._queue.put_nowait((NavigationStarted, NavigationStarted(url, future, callback)))

    def abort_navigation(self, url: str) -> None:
        self._queue.put_nowait((NavigationAborted, NavigationAborted(url)))

    async def _on_navigation_started(self, event: NavigationStarted) -> None:
        if not self._nav.settled:
            # superseded before it finished
            await self._settle(False)
        self._start(event.url, engine_started=False)
        self._nav.future, self._nav.callback = event.future, event.callback
        await self._announce_start(event.url)

    async def _on_navigation_aborted(self, event: NavigationAborted) -> None:
        if not self._nav.settled:
            await self._settle(False)

    async def _adopt_load(self, url: str) -> None:
        try:
            state = await self.surface.evaluate(_DOCUMENT_STATE_JS)
        except Exception:
            logger.debug("no document state for %s", url, exc_info=True)
            state = None
        href, ready = state if isinstance(state, list) and len(state) == 2 else (None, None)
        self._start(url or href or self.current_url, engine_started=True)
        await self._announce_start(self._nav.url)
        if ready == "complete" and (href == url or url in ("", "about:blank")):
            # loaded before anyone listened; queued load events are stale
            await self._settle(True)

    def _start(self, url: Optional[str], *, engine_started: bool) -> None:
        self._nav = _Navigation(url=url, settled=False, engine_started=engine_started)
        self._absorbing = False

    async def _announce_start(self, url: Optional[str]) -> None:
        if url and url != self.current_url:
            self.current_url = url
            await self.page.notify_url_changed(url)
        await self.page.notify_load_started(url or self.current_url, False)

    async def _run_open_callback(self, callback, status: str) -> None:
        if callback is None:
            return
        try:
            await maybe_await(callback(status))
        except Exception:
            logger.error("open() callback failed", exc_info=True)

    async def _settle(self, ok: bool) -> None:
        nav = self._nav
        if nav.settled:
            return
        nav.settled = True
        status = "success" if ok else "fail"
        url = nav.url or self.current_url
        future, callback = nav.future, nav.callback
        nav.future = nav.callback = None
        if ok:
            await self.page.notify_initialized()
        else:
            await self.page.notify(
                "resource_received",
                failed_response_descriptor(nav.document_resource_id or 1, url),
            )
        await self.page.notify_load_finished(status, self.current_url or url, False)
        await self._run_open_callback(callback, status)
        if future is not None and not future.done():
            future.set_result(status)

    # --- page domain ---

    def _is_main(self, frame_id) -> bool:
        return str(frame_id) == self.main_frame_id

    async def _on_frame_requested_navigation(self, event) -> None:
        if enum_value(event.disposition) != "currentTab":
            return
        frame_id = str(event.frame_id)
        is_main = self._is_main(frame_id)
        nav_type = _REASONS.get(enum_value(event.reason), "Undefined")
        will_navigate = not self.page.navigation_locked
        self._pending_urls[frame_id] = event.url
        await self.page.notify(
            "navigation_requested", event.url, nav_type, will_navigate, is_main
        )
        if not will_navigate:
            logger.debug("navigation to %s stopped: navigation locked", event.url)
            await self.surface.stop()

    async def _on_frame_started_loading(self, event) -> None:
        frame_id = str(event.frame_id)
        if self._is_main(frame_id):
            if self._absorbing:
                return
            pending = self._pending_urls.pop(frame_id, None)
            if not self._nav.settled:
                self._nav.engine_started = True
                return
            self._start(pending or self.current_url, engine_started=True)
            await self._announce_start(pending)
            return
        state = self._frames.setdefault(frame_id, _FrameState())
        pending = self._pending_urls.pop(frame_id, None)
        if pending:
            state.url = pending
        state.announced = self._nav.settled
        if state.announced:
            await self.page.notify_load_started(state.url, True)

    async def _on_frame_navigated(self, event) -> None:
        frame = event.frame
        frame_id = str(frame.id_)
        if frame.parent_id is None:
            self.main_frame_id = frame_id
            if frame.unreachable_url:
                # engine error page: the navigation failed
                await self._settle(False)
                self._absorbing = True
                return
            url = frame.url + (frame.url_fragment or "")
            if url != self.current_url:
                self.current_url = url
                await self.page.notify_url_changed(url)
            return
        self._frames.setdefault(frame_id, _FrameState()).url = frame.url

    async def _on_navigated_within_document(self, event) -> None:
        if not self._is_main(event.frame_id):
            return
        if event.url != self.current_url:
            self.current_url = event.url
            await self.page.notify_url_changed(event.url)
        if not self._nav.settled and not self._nav.engine_started:
            # fragment navigation: no document load will follow
            await self._settle(True)

    async def _on_frame_stopped_loading(self, event) -> None:
        frame_id = str(event.frame_id)
        if self._is_main(frame_id):
            if self._absorbing:
                self._absorbing = False
                return
            if not self._nav.settled and self._nav.engine_started:
                # stopped before the load event: stop(), 204, download...
                await self._settle(False)
            return
        state = self._frames.get(frame_id)
        if state is not None and state.announced and self._nav.settled:
            state.announced = False
            await self.page.notify_load_finished("success", state.url, True)

    async def _on_load_event_fired(self, event) -> None:
        if self._absorbing:
            return
        if not self._nav.settled and self._nav.engine_started:
            await self._settle(True)

    # --- network domain ---

    def _captures(self, content_type: Optional[str]) -> bool:
        if not content_type:
            return False
        return any(re.search(p, content_type) for p in self.page.capture_content)

    async def _on_request_will_be_sent(self, event) -> None:
        request_id = str(event.request_id)
        previous = self._requests.get(request_id)
        if event.redirect_response is not None and previous is not None:
            await self.page.notify(
                "resource_received",
                response_descriptor(
                    previous.id,
                    event.redirect_response,
                    "end",
                    referrer=previous.referrer,
                    redirect_url=event.request.url,
                ),
            )
        headers = dict(event.request.headers or {})
        resource = _Resource(
            next(self._resource_ids),
            event.request.url,
            referrer=str(headers.get("Referer", "")),
        )
        self._requests[request_id] = resource
        if (
            enum_value(event.type_) == "Document"
            and self._is_main(event.frame_id)
            and request_id == str(event.loader_id)
            and not self._nav.settled
        ):
            self._nav.document_request_id = request_id
            self._nav.document_resource_id = resource.id
        await self.page.notify(
            "resource_requested", request_descriptor(resource.id, event.request)
        )

    async def _on_response_received(self, event) -> None:
        resource = self._requests.get(str(event.request_id))
        if resource is None:
            return
        resource.response = event.response
        await self.page.notify(
            "resource_received",
            response_descriptor(
                resource.id, event.response, "start", referrer=resource.referrer
            ),
        )

    async def _on_loading_finished(self, event) -> None:
        request_id = str(event.request_id)
        resource = self._requests.pop(request_id, None)
        if resource is None or resource.response is None:
            return
        body = ""
        if self._captures(resource.response.mime_type):
            try:
                body = await self.surface.response_body(request_id)
            except Exception:
                logger.debug("no body for %s", resource.url, exc_info=True)
        await self.page.notify(
            "resource_received",
            response_descriptor(
                resource.id,
                resource.response,
                "end",
                referrer=resource.referrer,
                body=body,
                body_size=int(event.encoded_data_length or 0),
            ),
        )

    async def _on_loading_failed(self, event) -> None:
        request_id = str(event.request_id)
        resource = self._requests.pop(request_id, None)
        if resource is None:
            return
        if request_id == self._nav.document_request_id:
            if event.canceled:
                return
            logger.debug("load of %s failed: %s", resource.url, event.error_text)
            await self._settle(False)
            self._absorbing = True
            return
        await self.page.notify(
            "resource_received", failed_response_descriptor(resource.id, resource.url)
        )

    # --- runtime domain ---

    async def _on_context_created(self, event) -> None:
        context = event.context
        aux = context.aux_data or {}
        if not aux.get("isDefault") or not aux.get("frameId"):
            return
        window = self.windows.created(str(aux["frameId"]), int(context.id_))
        logger.debug(
            "window %d for frame %s (context %d)",
            window.window_id,
            window.frame_id,
            window.context_id,
        )

    async def _on_context_destroyed(self, event) -> None:
        window = self.windows.by_context(int(event.execution_context_id))
        self.windows.destroyed(int(event.execution_context_id))
        if window is not None:
            self.page.sandboxes.discard(window.window_id)

    async def _on_contexts_cleared(self, event) -> None:
        self.windows.clear()
        self.page.sandboxes.invalidate("contexts cleared")

    async def _on_console_api_called(self, event) -> None:
        if not self.windows.owns(event.execution_context_id):
            return
        message = None
        if event.args:
            first = event.args[0]
            message = first.value if first.value is not None else first.description
        line, file = None, ""
        frames = getattr(event.stack_trace, "call_frames", None) or []
        if frames:
            line, file = int(frames[0].line_number) + 1, frames[0].url or ""
        await self.page.notify("console_message", message, line, file)

    async def _on_exception_thrown(self, event) -> None:
        details = event.exception_details
        if not self.windows.owns(details.execution_context_id):
            return
        message, frames = normalize_exception_details(details)
        await self.page.notify("error", message, frames)

    async def _on_dialog_opening(self, event) -> None:
        kind = enum_value(event.type_)
        message = event.message
        if kind == "alert":
            await self.page.notify("alert", message)
            await self.surface.answer_dialog(True)
        elif kind == "confirm":
            accept = False
            if self.page.has_handler("confirm"):
                accept = bool(await self.page.notify("confirm", message))
            await self.surface.answer_dialog(accept)
        elif kind == "prompt":
            default = event.default_prompt or ""
            if not self.page.has_handler("prompt"):
                await self.surface.answer_dialog(True, default)
                return
            answer = await self.page.notify("prompt", message, default)
            if answer is None:
                await self.surface.answer_dialog(False)
            else:
                await self.surface.answer_dialog(True, str(answer))
        else:
            # beforeunload
            await self.surface.answer_dialog(True)

    async def _on_binding_called(self, event) -> None:
        if event.name != pcfg.CALLBACK_BINDING:
            return
        payload = json.loads(event.payload)
        call_id = payload.get("id")
        try:
            result, ok = await self.page.notify_callback(payload.get("value")), True
        except Exception as exc:
            result, ok = str(exc), False
        try:
            await self.surface.evaluate(
                settle_callback_source(call_id, ok, result),
                context_id=event.execution_context_id,
            )
        except Exception:
            logger.debug("callback result %s not delivered", call_id, exc_info=True)
