from __future__ import annotations
from typing import Any, Dict, Tuple


class pcfg:
    """Controller tuning and defaults"""

    # --- Engine (zendriver) launch ---
    HEADLESS = True
    SANDBOX = False  # chrome refuses to start sandboxed as root
    BROWSER_ARGS: Tuple[str, ...] = ("--disable-popup-blocking",)
    SURFACE_TIMEOUT_S = 10.0  # new window -> attached tab

    # --- Waiting on engine conditions ---
    FOCUS_TIMEOUT_S = 0.3
    FOCUS_POLL_S = 0.02
    POPUP_TIMEOUT_S = 10.0

    # Timeout for input sends (keep dispatch from blocking the loop)
    CDP_SEND_TIMEOUT_S = 0.35

    # --- Rendering ---
    JPEG_QUALITY = 80  # 0.8 on the 0..1 scale
    DEFAULT_RENDER_FORMAT = "png"

    # --- Content-side bridge ---
    CALLBACK_BINDING = "__pagedriverCallback"
    CALLBACK_EVENT = "callphantom"
    CALLBACK_FUNCTION = "callPhantom"

    # file names reported in stacks of evaluated code
    EVALUATE_SOURCE_URL = "phantomjs://webpage.evaluate()"

    # Settings applied when open() starts loading. Later edits are not retroactive.
    DEFAULT_SETTINGS: Dict[str, Any] = {
        "javascriptEnabled": True,
        "loadImages": True,
        "localToRemoteUrlAccessEnabled": False,
        "userAgent": None,  # None keeps the engine's own user agent
        "userName": None,
        "password": None,
        "XSSAuditingEnabled": False,
        "webSecurityEnabled": True,
        "maxAuthAttempts": None,
        "resourceTimeout": None,
        "javascriptCanOpenWindows": True,
        "javascriptCanCloseWindows": True,
    }

    # URL patterns blocked when loadImages is off
    IMAGE_URL_PATTERNS: Tuple[str, ...] = (
        "*.png",
        "*.jpg",
        "*.jpeg",
        "*.gif",
        "*.webp",
        "*.svg",
        "*.ico",
        "*.bmp",
    )

    # Settings kept for scripts that read them back; no engine switch backs them
    INERT_SETTINGS: Tuple[str, ...] = (
        "localToRemoteUrlAccessEnabled",
        "userName",
        "password",
        "XSSAuditingEnabled",
        "webSecurityEnabled",
        "maxAuthAttempts",
        "resourceTimeout",
        "javascriptCanOpenWindows",
        "javascriptCanCloseWindows",
    )
