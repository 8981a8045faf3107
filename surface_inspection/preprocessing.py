"""
Raster preprocessing for defect inspection.

Decodes encoded frames and reference images into RGBA pixel buffers and
stretches them to a canonical square so every pairwise comparison works
on identically shaped arrays, whatever the source aspect ratio.
"""

import base64
import binascii
import logging
import os

import cv2
import numpy as np

from .errors import DecodeError, UnsupportedFormatError
from .models import PixelBuffer

logger = logging.getLogger(__name__)

# Canonical comparison size. 128 is the fast path for live scanning.
CANONICAL_SIZE = int(os.environ.get("CANONICAL_SIZE", "256"))
FAST_CANONICAL_SIZE = 128

_DATA_URL_PREFIX = "data:"


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """
    Ensure image is uint8.

    Float rasters in [0, 1] are scaled to [0, 255]; 16-bit rasters keep
    their high byte.

    Raises:
        UnsupportedFormatError: For any other sample type.
    """
    if image_np.dtype == np.uint8:
        return image_np
    if image_np.dtype == np.uint16:
        return (image_np >> 8).astype(np.uint8)
    if np.issubdtype(image_np.dtype, np.floating):
        if image_np.size and image_np.max() <= 1.0:
            image_np = image_np * 255
        return np.clip(image_np, 0, 255).astype(np.uint8)
    raise UnsupportedFormatError(f"Unsupported sample type: {image_np.dtype}")


def _payload_bytes(payload) -> bytes:
    """Return raw encoded bytes from bytes-like input or a data URL."""
    if isinstance(payload, str):
        if not payload.startswith(_DATA_URL_PREFIX):
            raise DecodeError("String payloads must be data URLs")
        header, _, encoded = payload.partition(",")
        if ";base64" not in header:
            raise DecodeError("Only base64 data URLs are supported")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Invalid base64 image data: {e}") from e

    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)

    raise DecodeError(f"Cannot decode payload of type {type(payload).__name__}")


def _to_rgba(image_np: np.ndarray) -> np.ndarray:
    """Convert an OpenCV-decoded gray/BGR/BGRA raster to RGBA."""
    image_np = normalize_image(image_np)

    if image_np.ndim == 2:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)
    if image_np.ndim == 3 and image_np.shape[2] == 1:
        return cv2.cvtColor(image_np[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if image_np.ndim == 3 and image_np.shape[2] == 3:
        return cv2.cvtColor(image_np, cv2.COLOR_BGR2RGBA)
    if image_np.ndim == 3 and image_np.shape[2] == 4:
        return cv2.cvtColor(image_np, cv2.COLOR_BGRA2RGBA)

    raise UnsupportedFormatError(
        f"Cannot extract RGBA pixels from raster of shape {image_np.shape}"
    )


def decode_image(payload) -> PixelBuffer:
    """
    Decode an encoded image into a native-resolution RGBA buffer.

    Args:
        payload: Encoded image bytes, or a base64 ``data:`` URL.

    Returns:
        PixelBuffer at the image's own resolution.

    Raises:
        DecodeError: If the payload is empty or not a valid image.
        UnsupportedFormatError: If the decoded pixels cannot be mapped to RGBA.
    """
    raw = _payload_bytes(payload)
    if not raw:
        raise DecodeError("Empty image payload")

    buf = np.frombuffer(raw, dtype=np.uint8)
    image = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0:
        raise DecodeError("Payload is not a decodable image")

    rgba = _to_rgba(image)
    logger.debug(f"Decoded {rgba.shape[1]}x{rgba.shape[0]} image ({len(raw)} bytes)")
    return PixelBuffer.from_array(rgba)


def to_canonical(buffer: PixelBuffer, size: int = CANONICAL_SIZE) -> PixelBuffer:
    """
    Stretch a buffer to ``size`` x ``size``.

    No letterboxing: the aspect ratio is deliberately discarded so that
    every comparison sees the same grid.
    """
    if buffer.width == size and buffer.height == size:
        return buffer

    shrinking = buffer.width * buffer.height >= size * size
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
    resized = cv2.resize(buffer.pixels.copy(), (size, size), interpolation=interpolation)
    return PixelBuffer.from_array(resized)


def load_canonical(payload, size: int = CANONICAL_SIZE) -> PixelBuffer:
    """Decode ``payload`` and stretch it to the canonical size."""
    if isinstance(payload, PixelBuffer):
        return to_canonical(payload, size)
    return to_canonical(decode_image(payload), size)
