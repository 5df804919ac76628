from __future__ import annotations
import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .config import pcfg


def enum_value(value: Any) -> Any:
    """Return ``value.value`` for protocol enums, the value itself otherwise."""
    return getattr(value, "value", value)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable; callbacks may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


def _frame_line(raw: Any) -> Optional[int]:
    try:
        return int(raw) + 1  # protocol lines are 0-based
    except (TypeError, ValueError):
        return None


def normalize_exception_details(details: Any) -> Tuple[str, List[Dict[str, Any]]]:
    """Turn Runtime.ExceptionDetails into ``(message, [{file, line, function}])``.

    The function name is None when the engine reports an anonymous frame.
    """
    exception = getattr(details, "exception", None)
    description = getattr(exception, "description", None) if exception else None
    if description:
        message = str(description).split("\n", 1)[0]
    elif exception is not None and getattr(exception, "value", None) is not None:
        message = str(exception.value)
    else:
        message = str(getattr(details, "text", "") or "")

    frames: List[Dict[str, Any]] = []
    stack = getattr(details, "stack_trace", None)
    for call_frame in getattr(stack, "call_frames", None) or []:
        frames.append(
            {
                "file": call_frame.url or "",
                "line": _frame_line(call_frame.line_number),
                "function": call_frame.function_name or None,
            }
        )
    if not frames and getattr(details, "url", None):
        frames.append(
            {
                "file": details.url,
                "line": _frame_line(getattr(details, "line_number", None)),
                "function": None,
            }
        )
    return message, frames


async def send_cdp_event(
    fn: Callable[[], Awaitable[Any]], *, label: str, timeout: Optional[float] = None
) -> None:
    """Bounded-time CDP send with shielded task.

    A send that stalls keeps running in the background; a send that fails is
    logged and skipped.
    """
    logger = logging.getLogger(__name__)
    timeout = pcfg.CDP_SEND_TIMEOUT_S if timeout is None else timeout
    send_task = asyncio.create_task(fn())
    start = time.perf_counter()
    try:
        await asyncio.wait_for(asyncio.shield(send_task), timeout=timeout)
    except asyncio.TimeoutError:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.warning(
            "CDP %s pending %.1f ms (>%.0f ms); letting it finish in background",
            label,
            elapsed_ms,
            timeout * 1000.0,
        )

        def _late_log(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("late CDP %s failed: %s", label, task.exception())

        send_task.add_done_callback(_late_log)
    except Exception:
        logger.warning("CDP %s failed (skipped this event)", label, exc_info=True)
