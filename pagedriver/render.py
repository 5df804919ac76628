from __future__ import annotations
import asyncio
import base64
import io
import logging
import os
from pathlib import Path as FSPath
from typing import Any, Dict, Mapping, Optional

from PIL import Image

from .config import pcfg
from .errors import ClipRectError, RenderFormatError

logger = logging.getLogger(__name__)

_FORMATS = {"png": "PNG", "jpeg": "JPEG"}
_ALIASES = {"jpg": "jpeg"}


def validate_clip_rect(value: Any) -> Optional[Dict[str, float]]:
    """Normalize a clip rectangle; None clears it.

    Non-mapping values clear the rectangle. A mapping must carry numeric
    ``top``/``left`` >= 0 and ``width``/``height`` > 0.
    """
    if not isinstance(value, Mapping):
        return None
    rect: Dict[str, float] = {}
    for key in ("top", "left", "width", "height"):
        raw = value.get(key)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ClipRectError(f"clipRect.{key} must be a number, got {raw!r}")
        rect[key] = raw
    if rect["top"] < 0 or rect["left"] < 0:
        raise ClipRectError("clipRect.top and clipRect.left must be >= 0")
    if rect["width"] <= 0 or rect["height"] <= 0:
        raise ClipRectError("clipRect.width and clipRect.height must be > 0")
    return rect


def normalize_format(fmt: Optional[str]) -> str:
    name = (fmt or pcfg.DEFAULT_RENDER_FORMAT).strip().lower()
    name = _ALIASES.get(name, name)
    if name not in _FORMATS:
        raise RenderFormatError(f"Unsupported render format: {fmt!r}")
    return name


def format_from_path(path: str) -> str:
    """Format implied by the file extension; png when there is none."""
    ext = os.path.splitext(str(path))[1].lstrip(".").lower()
    if not ext:
        return pcfg.DEFAULT_RENDER_FORMAT
    return normalize_format(ext)


def encode_image(png_bytes: bytes, fmt: str, quality: int = pcfg.JPEG_QUALITY) -> bytes:
    """Re-encode a lossless engine capture into ``fmt``."""
    fmt = normalize_format(fmt)
    if fmt == "png":
        return png_bytes
    with Image.open(io.BytesIO(png_bytes)) as image:
        # JPEG has no alpha channel
        rgb = image.convert("RGB")
    out = io.BytesIO()
    rgb.save(out, format=_FORMATS[fmt], quality=int(quality), optimize=True)
    return out.getvalue()


async def capture(
    surface,
    clip_rect: Optional[Mapping[str, float]] = None,
    fmt: str = "png",
    ratio: Optional[float] = None,
) -> bytes:
    """Capture the surface (clipped and scaled by the engine) and encode it.

    Encoding is offloaded to a worker thread to avoid blocking the event loop.
    """
    fmt = normalize_format(fmt)
    scale = float(ratio) if ratio else 1.0
    png = await surface.capture_png(clip_rect, scale)
    if fmt == "png":
        return png
    return await asyncio.to_thread(encode_image, png, fmt)


async def capture_base64(surface, clip_rect=None, fmt="png", ratio=None) -> str:
    data = await capture(surface, clip_rect, fmt, ratio)
    return base64.b64encode(data).decode("ascii")


async def capture_to_file(surface, path: str, clip_rect=None, ratio=None) -> str:
    fmt = format_from_path(path)
    data = await capture(surface, clip_rect, fmt, ratio)
    out = FSPath(path)

    def _write() -> None:
        if out.parent and not out.parent.exists():
            out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(data)

    await asyncio.to_thread(_write)
    logger.debug("rendered %s (%s, %d bytes)", out, fmt, len(data))
    return str(out)
