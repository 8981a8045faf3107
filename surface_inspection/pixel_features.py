"""
Coarse pixel statistics for a captured frame.

One strided scan of the native-resolution frame yields dark-pixel and
color-irregularity counts, the mean brightness, and the coordinates of
flagged pixels. Those coordinates become the padded bounding boxes
reported with a detected defect.
"""

import logging
import os
from typing import Optional

import numpy as np

from .models import BoundingBox, PixelBuffer, PixelFeatures

logger = logging.getLogger(__name__)

# Sampling stride in each axis; bounds scan cost on large frames.
SAMPLE_STRIDE = 2

# Luminance below which a sampled pixel counts as dark (0-255).
DARK_LUMINANCE_THRESHOLD = float(os.environ.get("DARK_LUMINANCE_THRESHOLD", "60"))

# |R-G| + |G-B| + |B-R| above which a sampled pixel counts as irregular.
IRREGULARITY_THRESHOLD = float(os.environ.get("IRREGULARITY_THRESHOLD", "100"))

# Margin added around the extreme flagged pixels, in source pixels.
BOX_PADDING = int(os.environ.get("BOX_PADDING", "20"))


def compute_bounding_box(coords: np.ndarray,
                         width: int,
                         height: int,
                         padding: int = BOX_PADDING) -> Optional[BoundingBox]:
    """
    Padded rectangle around a set of (x, y) pixel coordinates.

    The box is clamped so it lies entirely inside [0, width) x [0, height).

    Args:
        coords: Integer array of shape (N, 2), columns x and y.
        width: Source image width.
        height: Source image height.
        padding: Margin added on every side before clamping.

    Returns:
        BoundingBox, or None when coords is empty.
    """
    if coords is None or len(coords) == 0 or width <= 0 or height <= 0:
        return None

    xs = coords[:, 0]
    ys = coords[:, 1]

    x0 = max(0, int(xs.min()) - padding)
    y0 = max(0, int(ys.min()) - padding)
    x1 = min(width - 1, int(xs.max()) + padding)
    y1 = min(height - 1, int(ys.max()) + padding)

    return BoundingBox(x=x0, y=y0, width=x1 - x0 + 1, height=y1 - y0 + 1)


def analyze_pixels(buffer: PixelBuffer) -> PixelFeatures:
    """
    Scan every SAMPLE_STRIDE-th pixel in each axis of a native-size frame.

    Per sampled pixel:
        luminance = (R + G + B) / 3
        channel variance = |R - G| + |G - B| + |B - R|

    Args:
        buffer: Frame at its own resolution (not canonicalized).

    Returns:
        PixelFeatures with counts, mean brightness, flagged coordinates
        and their bounding boxes.
    """
    rgb = buffer.rgb[::SAMPLE_STRIDE, ::SAMPLE_STRIDE].astype(np.int32)
    r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]

    luminance = (r + g + b) / 3.0
    variance = np.abs(r - g) + np.abs(g - b) + np.abs(b - r)

    dark_mask = luminance < DARK_LUMINANCE_THRESHOLD
    irregular_mask = variance > IRREGULARITY_THRESHOLD

    dark_coords = _mask_coords(dark_mask)
    irregular_coords = _mask_coords(irregular_mask)

    average_brightness = float(luminance.mean()) if luminance.size else 0.0

    features = PixelFeatures(
        width=buffer.width,
        height=buffer.height,
        dark_spot_count=int(dark_mask.sum()),
        average_brightness=average_brightness,
        irregularity_count=int(irregular_mask.sum()),
        dark_spot_coords=dark_coords,
        irregular_coords=irregular_coords,
        dark_spot_box=compute_bounding_box(dark_coords, buffer.width, buffer.height),
        irregular_box=compute_bounding_box(irregular_coords, buffer.width, buffer.height),
    )

    logger.debug(
        f"Pixel scan {buffer.width}x{buffer.height}: "
        f"{features.dark_spot_count} dark, {features.irregularity_count} irregular, "
        f"brightness {average_brightness:.1f}"
    )
    return features


def _mask_coords(mask: np.ndarray) -> np.ndarray:
    """Source-pixel (x, y) coordinates of the set cells of a strided mask."""
    ys, xs = np.nonzero(mask)
    coords = np.stack([xs, ys], axis=1) * SAMPLE_STRIDE
    return coords.astype(np.int64)
