"""Tool execution gateway contract and tool-result classification.

The gateway itself (the thing that clicks, types and captures frames)
lives outside this package.  This module defines what the orchestrator
expects from it and turns whatever it returns -- or raises -- into a
tool_result part the model can read.

Outcomes:
  success        -> plain JSON payload
  logical error  -> result dict carrying an "error" field
  raised error   -> exception from the gateway call
  timeout        -> either of the above flagged or worded as a timeout
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import struct
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from tabpilot.api.models import ImagePart, TextPart, ToolResultPart, tool_result
from tabpilot.api.tools import NAVIGATE_TOOL, SCREENSHOT_TOOL

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 800, "devicePixelRatio": 1}

_TIMEOUT_MARKERS = ("timed out", "took too long")
_FRIENDLY_TIMEOUT = (
    "The request took too long and timed out. "
    "Please try again later or try a different approach."
)
_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class ToolGateway(Protocol):
    """Executes one tool call. May be slow; may raise; may return {"error": ...}."""

    async def __call__(self, tool_name: str, arguments: dict[str, Any]) -> Any: ...


# ------------------------------------------------------------------
# Coordinate scaling
# ------------------------------------------------------------------


@dataclass(frozen=True)
class CoordinateScale:
    """Maps image pixels onto the interactive surface: logical = measured * factor."""

    image_width: int
    image_height: int
    surface_width: float
    surface_height: float

    @property
    def x_factor(self) -> float:
        return self.surface_width / self.image_width

    @property
    def y_factor(self) -> float:
        return self.surface_height / self.image_height

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return x * self.x_factor, y * self.y_factor


def scale_point(
    point: tuple[float, float],
    image_size: tuple[int, int],
    surface_size: tuple[float, float],
) -> tuple[float, float]:
    """Convert a point measured on a captured image to surface coordinates.

    >>> scale_point((400, 300), (800, 600), (1280, 960))
    (640.0, 480.0)
    """
    scale = CoordinateScale(image_size[0], image_size[1], surface_size[0], surface_size[1])
    return scale.apply(*point)


def png_dimensions(data: bytes) -> tuple[int, int] | None:
    """Read (width, height) from a PNG IHDR chunk, or None if not a PNG."""
    if len(data) < 24 or not data.startswith(_PNG_SIGNATURE) or data[12:16] != b"IHDR":
        return None
    width, height = struct.unpack(">II", data[16:24])
    return width, height


def _split_data_url(value: str) -> tuple[str, str]:
    """Return (media_type, base64 data) from a data URL or bare base64 string."""
    if value.startswith("data:") and "," in value:
        header, data = value.split(",", 1)
        media_type = header[5:].split(";", 1)[0] or "image/png"
        return media_type, data
    return "image/png", value


def _image_size(result: Mapping[str, Any], data: str) -> tuple[int, int] | None:
    width = result.get("image_width") or result.get("imageWidth")
    height = result.get("image_height") or result.get("imageHeight")
    if width and height:
        try:
            return int(width), int(height)
        except (TypeError, ValueError):
            logger.debug("Ignoring reported image size %r x %r", width, height)
    try:
        head = base64.b64decode(data[:64], validate=False)
    except (binascii.Error, ValueError):
        return None
    return png_dimensions(head)


def coordinate_instructions(viewport: Mapping[str, Any], image_size: tuple[int, int] | None) -> str:
    """Instruction text telling the model how to turn image pixels into click coordinates."""
    surface_w = viewport.get("width", DEFAULT_VIEWPORT["width"])
    surface_h = viewport.get("height", DEFAULT_VIEWPORT["height"])
    if image_size is None:
        return (
            "Click Task Procedure:\n"
            "Step 1. Measure the attached image dimensions in pixels to obtain: image_width and image_height.\n"
            "Step 2. Locate the center point of the element in the screenshot and record its pixel "
            "coordinates as: screenshot_x and screenshot_y\n"
            "Step 3. Apply the following conversion formulas to calculate viewport coordinates:\n"
            f"   * viewport_x = (screenshot_x * {surface_w}) / (image_width)\n"
            f"   * viewport_y = (screenshot_y * {surface_h}) / (image_height)\n"
            "Step 4. Output the final click coordinates as: (viewport_x, viewport_y)."
        )

    scale = CoordinateScale(image_size[0], image_size[1], surface_w, surface_h)
    return (
        "Click Task Procedure:\n"
        f"The attached image is {scale.image_width}x{scale.image_height} pixels; "
        f"the page viewport is {surface_w}x{surface_h}.\n"
        "Step 1. Locate the center point of the element in the screenshot and record its pixel "
        "coordinates as: screenshot_x and screenshot_y\n"
        "Step 2. Convert to viewport coordinates:\n"
        f"   * viewport_x = screenshot_x * ({surface_w} / {scale.image_width}) "
        f"= screenshot_x * {scale.x_factor:.4f}\n"
        f"   * viewport_y = screenshot_y * ({surface_h} / {scale.image_height}) "
        f"= screenshot_y * {scale.y_factor:.4f}\n"
        "Step 3. Output the final click coordinates as: (viewport_x, viewport_y)."
    )


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


def _looks_like_timeout(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _TIMEOUT_MARKERS)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def result_from_exception(invocation_id: str, error: BaseException) -> ToolResultPart:
    """A gateway call raised. Always recoverable: report it to the model."""
    message = str(error) or type(error).__name__
    is_timeout = isinstance(error, TimeoutError) or _looks_like_timeout(message)
    friendly = _FRIENDLY_TIMEOUT if is_timeout else message
    return tool_result(
        invocation_id,
        _dumps({"error": friendly, "timeout": is_timeout}),
        is_error=True,
        timeout=is_timeout,
    )


def _screenshot_result(invocation_id: str, result: Mapping[str, Any]) -> ToolResultPart:
    media_type, data = _split_data_url(result["screenshot"])
    viewport = result.get("viewport")
    if not isinstance(viewport, Mapping):
        viewport = DEFAULT_VIEWPORT
    size = _image_size(result, data)
    width, height = size if size else (None, None)
    return tool_result(
        invocation_id,
        [
            TextPart(coordinate_instructions(viewport, size)),
            ImagePart(data=data, media_type=media_type, width=width, height=height),
        ],
    )


def _navigate_result(invocation_id: str, arguments: Mapping[str, Any], result: Mapping[str, Any]) -> ToolResultPart:
    if result.get("success") is False or result.get("error"):
        reason = result.get("error") or "Navigation failed for unknown reason"
        return tool_result(
            invocation_id,
            _dumps({
                "success": False,
                "error": (
                    f"Navigation failed: {reason}. The page did not change. "
                    "Please verify the URL is correct and try again."
                ),
                "attemptedUrl": result.get("url") or arguments.get("url"),
            }),
            is_error=True,
        )
    if result.get("success") is True:
        return tool_result(
            invocation_id,
            _dumps({
                "success": True,
                "url": result.get("url"),
                "message": (
                    "Navigation command executed. IMPORTANT: You must verify navigation "
                    "succeeded by taking a screenshot to confirm the page actually changed."
                ),
            }),
        )
    return tool_result(invocation_id, _dumps(result))


def classify_result(
    invocation_id: str,
    tool_name: str,
    arguments: Mapping[str, Any],
    result: Any,
) -> ToolResultPart:
    """Turn a gateway return value into a tool_result part.

    Inspects the contents, not just the absence of an exception: a dict
    with an "error" field is a logical failure even on normal return.
    """
    if not isinstance(result, Mapping):
        return tool_result(invocation_id, _dumps(result))

    if tool_name == SCREENSHOT_TOOL and result.get("success") and isinstance(result.get("screenshot"), str):
        return _screenshot_result(invocation_id, result)

    if tool_name == NAVIGATE_TOOL:
        return _navigate_result(invocation_id, arguments, result)

    if result.get("error"):
        message = str(result["error"])
        is_timeout = result.get("timeout") is True or _looks_like_timeout(message)
        return tool_result(
            invocation_id,
            _dumps({"error": message, "timeout": is_timeout}),
            is_error=True,
            timeout=is_timeout,
        )

    return tool_result(invocation_id, _dumps(result))


# ------------------------------------------------------------------
# Routing
# ------------------------------------------------------------------


class RoutingGateway:
    """Sends external tool names to the source that owns them, the rest to the browser executor."""

    def __init__(self, local: ToolGateway, sources: list[Any] | None = None) -> None:
        self._local = local
        self._sources = list(sources or [])

    def add_source(self, source: Any) -> None:
        self._sources.append(source)

    async def __call__(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        for source in self._sources:
            if source.owns(tool_name):
                logger.debug("Routing %s to %s", tool_name, source.name)
                return await source.call_tool(tool_name, arguments)
        return await self._local(tool_name, arguments)
