"""
Frame resizing for storage and transmission.

Independent of the comparison path: produces a smaller JPEG of a
captured frame so reference samples and history images stay within the
persistence collaborator's size limits.
"""

import base64
import logging

import cv2

from .errors import DecodeError
from .preprocessing import decode_image

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 800
DEFAULT_MAX_HEIGHT = 800
DEFAULT_QUALITY = 0.8


def _target_size(width: int, height: int, max_width: int, max_height: int):
    if width <= max_width and height <= max_height:
        return width, height

    aspect_ratio = width / height
    if width > height:
        return max_width, max(1, round(max_width / aspect_ratio))
    return max(1, round(max_height * aspect_ratio)), max_height


def resize_image(payload,
                 max_width: int = DEFAULT_MAX_WIDTH,
                 max_height: int = DEFAULT_MAX_HEIGHT,
                 quality: float = DEFAULT_QUALITY) -> bytes:
    """
    Downscale a frame to fit ``max_width`` x ``max_height`` and re-encode as JPEG.

    The aspect ratio is preserved and images that already fit are not
    enlarged. Alpha is dropped since JPEG has none.

    Args:
        payload: Encoded image bytes or a base64 data URL.
        max_width: Maximum output width in pixels.
        max_height: Maximum output height in pixels.
        quality: JPEG quality in [0, 1].

    Returns:
        JPEG-encoded bytes.

    Raises:
        DecodeError: If the payload cannot be decoded or re-encoded.
    """
    buffer = decode_image(payload)
    width, height = _target_size(buffer.width, buffer.height, max_width, max_height)

    bgr = cv2.cvtColor(buffer.pixels.copy(), cv2.COLOR_RGBA2BGR)
    if (width, height) != (buffer.width, buffer.height):
        bgr = cv2.resize(bgr, (width, height), interpolation=cv2.INTER_AREA)

    jpeg_quality = int(round(min(max(quality, 0.0), 1.0) * 100))
    ok, encoded = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
    if not ok:
        raise DecodeError("JPEG re-encoding failed")

    data = encoded.tobytes()
    logger.debug(
        f"Image resized: {buffer.width}x{buffer.height} -> {width}x{height}, "
        f"{len(data) / 1024:.2f}KB"
    )
    return data


def resize_image_data_url(payload,
                          max_width: int = DEFAULT_MAX_WIDTH,
                          max_height: int = DEFAULT_MAX_HEIGHT,
                          quality: float = DEFAULT_QUALITY) -> str:
    """Same as resize_image(), returned as a ``data:image/jpeg;base64,`` URL."""
    data = resize_image(payload, max_width, max_height, quality)
    return "data:image/jpeg;base64," + base64.b64encode(data).decode("ascii")


def base64_size_kb(text: str) -> float:
    """Size of a base64 string in KB."""
    return len(text) / 1024
