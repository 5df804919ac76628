from __future__ import annotations
import asyncio
import logging

from ..config import pcfg
from .events import PageState

logger = logging.getLogger(__name__)


class PopupInterceptor:
    """Turns window.open() requests of a page's content into child WebPages.

    Runs in two phases: the child is reserved in the parent's registry as soon
    as the engine announces the new target, then attached once the engine
    exposes its surface. Waiting for the surface is bounded by
    ``pcfg.POPUP_TIMEOUT_S``.
    """

    def __init__(self, page, timeout_seconds: float = pcfg.POPUP_TIMEOUT_S):
        self.page = page
        self.timeout_seconds = timeout_seconds

    async def intercept(self, target_info):
        """Handle one target created by the page; returns the child surface or None."""
        if target_info.type_ != "page":
            logger.debug(
                "rejecting in-frame open request (%s %s)",
                target_info.type_,
                target_info.url,
            )
            return None
        parent = self.page
        if parent.state is not PageState.OPEN:
            return None

        child = parent._reserve_child()
        target_id = str(target_info.target_id)
        try:
            await child._ensure_surface(
                lambda: parent.engine.adopt_surface(
                    target_id, timeout=self.timeout_seconds
                ),
                adopt=True,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "popup %s not ready after %.1fs; dropped",
                target_id,
                self.timeout_seconds,
            )
            parent._release_child(child)
            return None
        except Exception:
            logger.warning("popup %s could not be attached", target_id, exc_info=True)
            parent._release_child(child)
            return None
        surface = child.surface
        if surface is None:
            parent._release_child(child)
            return None

        # the window.open() load is already underway; the child reports it
        # once on_page_created has had the chance to set handlers
        child._resume_adopted_load(target_info.url or "")
        await parent.notify("page_created", child)
        return surface
