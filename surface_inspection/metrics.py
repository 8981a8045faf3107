"""
Pairwise pixel similarity metrics.

Every metric takes two canonical-size buffers and returns a similarity
in [0, 1] where 1 means identical. All of them are symmetric: operands
only ever meet through commutative operations (products, sums, absolute
differences), so metric(a, b) == metric(b, a) exactly.

None of these raise. Degenerate input (flat images, zero variance)
has a documented fallback and unexpected failures are logged and
scored 0.0, so a NaN can never reach the weighted total.
"""

import logging

import cv2
import numpy as np

from .models import PixelBuffer

logger = logging.getLogger(__name__)

# SSIM stabilizers for an 8-bit dynamic range: (0.01*255)^2, (0.03*255)^2
SSIM_C1 = 6.5025
SSIM_C2 = 58.5225
SSIM_GRID_STEP = 8

EDGE_STEP = 2

PATCH_SIZE = 16
PATCH_STEP = 2

COLOR_SAMPLE_STEP = 4


def luminance(buffer: PixelBuffer) -> np.ndarray:
    """ITU-R BT.601 luminance as a float64 (H, W) array."""
    rgb = buffer.rgb.astype(np.float64)
    return 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]


def _finite(score: float) -> float:
    if not np.isfinite(score):
        return 0.0
    return float(min(1.0, max(0.0, score)))


def structural_similarity(buffer1: PixelBuffer, buffer2: PixelBuffer) -> float:
    """
    Global SSIM over luminance sampled on an 8x8 grid.

    A single window covers the whole sampled grid:

        ((2*m1*m2 + C1) * (2*cov + C2)) / ((m1^2 + m2^2 + C1) * (v1 + v2 + C2))

    Negative values (anti-correlated structure) clamp to 0.
    """
    try:
        l1 = luminance(buffer1)[::SSIM_GRID_STEP, ::SSIM_GRID_STEP]
        l2 = luminance(buffer2)[::SSIM_GRID_STEP, ::SSIM_GRID_STEP]

        mean1 = l1.mean()
        mean2 = l2.mean()
        var1 = (l1 * l1).mean() - mean1 * mean1
        var2 = (l2 * l2).mean() - mean2 * mean2
        covar = (l1 * l2).mean() - mean1 * mean2

        numerator = (2.0 * (mean1 * mean2) + SSIM_C1) * (2.0 * covar + SSIM_C2)
        denominator = (mean1 * mean1 + mean2 * mean2 + SSIM_C1) * (var1 + var2 + SSIM_C2)
        return _finite(numerator / denominator)

    except Exception as e:
        logger.error(f"Structural comparison failed: {e}")
        return 0.0


def gradient_magnitude(lum: np.ndarray) -> np.ndarray:
    """3x3 Sobel gradient magnitude of a luminance array (same shape)."""
    gx = cv2.Sobel(lum, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(lum, cv2.CV_64F, 0, 1, ksize=3)
    return np.sqrt(gx * gx + gy * gy)


def sobel_magnitudes(buffer: PixelBuffer, step: int = EDGE_STEP) -> np.ndarray:
    """
    Sobel gradient magnitude of luminance, sampled every ``step`` pixels.

    Only interior pixels (full 3x3 neighbourhood) are sampled, starting
    at (1, 1), row-major.

    Returns:
        Flat float64 array of magnitudes.
    """
    lum = luminance(buffer)
    if lum.shape[0] < 3 or lum.shape[1] < 3:
        return np.zeros(0, dtype=np.float64)

    magnitude = gradient_magnitude(lum)
    return magnitude[1:-1:step, 1:-1:step].reshape(-1)


def edge_similarity(buffer1: PixelBuffer, buffer2: PixelBuffer) -> float:
    """
    Pearson correlation of Sobel magnitudes, mapped to [0, 1] by (r + 1) / 2.

    Correlation is undefined when either magnitude sequence has zero
    variance; that scores 0.0, except for pixel-identical inputs (two
    copies of one flat image), which score 1.0.
    """
    try:
        edges1 = sobel_magnitudes(buffer1)
        edges2 = sobel_magnitudes(buffer2)

        count = min(len(edges1), len(edges2))
        if count == 0:
            return 0.0
        edges1 = edges1[:count]
        edges2 = edges2[:count]

        mean1 = edges1.mean()
        mean2 = edges2.mean()
        var1 = (edges1 * edges1).mean() - mean1 * mean1
        var2 = (edges2 * edges2).mean() - mean2 * mean2
        covar = (edges1 * edges2).mean() - mean1 * mean2

        denominator = np.sqrt(max(var1, 0.0) * max(var2, 0.0))
        if denominator == 0:
            return 1.0 if np.array_equal(buffer1.pixels, buffer2.pixels) else 0.0

        correlation = min(1.0, max(-1.0, covar / denominator))
        return _finite((correlation + 1) / 2)

    except Exception as e:
        logger.error(f"Edge comparison failed: {e}")
        return 0.0


def patch_similarity(buffer1: PixelBuffer, buffer2: PixelBuffer) -> float:
    """
    Mean per-patch similarity over 16x16 non-overlapping patches.

    Inside each patch every 2nd pixel in each axis is compared; the patch
    scores 1 - (mean of |dR| + |dG| + |dB|) / (255 * 3). Pixels beyond the
    last whole patch are ignored. Returns 0.0 if no whole patch fits.
    """
    try:
        height = min(buffer1.height, buffer2.height)
        width = min(buffer1.width, buffer2.width)
        rows = height // PATCH_SIZE
        cols = width // PATCH_SIZE
        if rows == 0 or cols == 0:
            return 0.0

        crop_h = rows * PATCH_SIZE
        crop_w = cols * PATCH_SIZE
        a = buffer1.rgb[:crop_h:PATCH_STEP, :crop_w:PATCH_STEP].astype(np.int16)
        b = buffer2.rgb[:crop_h:PATCH_STEP, :crop_w:PATCH_STEP].astype(np.int16)

        # Summed channel difference per sampled pixel, grouped by patch.
        diff = np.abs(a - b).sum(axis=2)
        per_side = PATCH_SIZE // PATCH_STEP
        patches = diff.reshape(rows, per_side, cols, per_side).mean(axis=(1, 3))

        patch_scores = 1.0 - patches / (255.0 * 3)
        return _finite(patch_scores.mean())

    except Exception as e:
        logger.error(f"Patch comparison failed: {e}")
        return 0.0


def _value_saturation(rgb: np.ndarray):
    """Simplified HSV value and saturation per pixel, both in [0, 1]."""
    rgb = rgb.astype(np.float64) / 255.0
    mx = rgb.max(axis=1)
    mn = rgb.min(axis=1)
    saturation = np.divide(mx - mn, mx, out=np.zeros_like(mx), where=mx > 0)
    return mx, saturation


def color_similarity(buffer1: PixelBuffer, buffer2: PixelBuffer) -> float:
    """
    Compare value/saturation of every 4th pixel (row-major order).

    Score is 1 - min(1, sum(|dV| + |dS|) / (2 * count)).
    """
    try:
        flat1 = buffer1.rgb.reshape(-1, 3)[::COLOR_SAMPLE_STEP]
        flat2 = buffer2.rgb.reshape(-1, 3)[::COLOR_SAMPLE_STEP]
        count = min(len(flat1), len(flat2))
        if count == 0:
            return 0.0

        v1, s1 = _value_saturation(flat1[:count])
        v2, s2 = _value_saturation(flat2[:count])

        total_diff = (np.abs(v1 - v2) + np.abs(s1 - s2)).sum()
        return _finite(1.0 - min(1.0, total_diff / (count * 2)))

    except Exception as e:
        logger.error(f"Color comparison failed: {e}")
        return 0.0
