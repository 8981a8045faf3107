"""
Surface texture comparison for flash (molding) defects.

Flash shows up as a change of surface finish rather than as a localized
color or shape anomaly, so the default color/structure bundle barely
reacts to it. This module compares six luminance statistics instead:

    texture          8x8 block variance, contrast and homogeneity
    roughness        spread of the 8-directional local gradients
    gloss            bright-pixel ratio and bright/dark transition rate
    variance         16x16 block variance map
    high_frequency   mean absolute discrete Laplacian
    edge_irregularity  deviation of Sobel magnitude from its 4-neighbour mean

Each statistic becomes a similarity via max(0, 1 - |delta| / normalizer).
The normalizers are fixed calibration constants, one per statistic,
because the raw magnitudes live on very different scales.
"""

import logging
from typing import Dict

import cv2
import numpy as np

from .metrics import gradient_magnitude, luminance
from .models import PixelBuffer

logger = logging.getLogger(__name__)

TEXTURE_BLOCK = 8
VARIANCE_BLOCK = 16
ROUGHNESS_STEP = 2
GLOSS_BRIGHT_THRESHOLD = 200

# Calibration constants. Changing any of them shifts every flash verdict.
BLOCK_VARIANCE_NORMALIZER = 16256.25    # 127.5^2, largest 8-bit variance
BLOCK_CONTRAST_NORMALIZER = 255.0
ROUGHNESS_NORMALIZER = 32.0
GLOSS_TRANSITION_NORMALIZER = 0.25
LOCAL_VARIANCE_NORMALIZER = 1024.0
HIGH_FREQUENCY_NORMALIZER = 64.0
EDGE_IRREGULARITY_NORMALIZER = 128.0

_NEIGHBOURS = [(-1, -1), (-1, 0), (-1, 1), (0, -1),
               (0, 1), (1, -1), (1, 0), (1, 1)]


def _blocks(lum: np.ndarray, size: int) -> np.ndarray:
    """Split into whole size x size blocks: shape (rows, cols, size*size)."""
    rows = lum.shape[0] // size
    cols = lum.shape[1] // size
    cropped = lum[:rows * size, :cols * size]
    blocks = cropped.reshape(rows, size, cols, size).transpose(0, 2, 1, 3)
    return blocks.reshape(rows, cols, size * size)


def _texture_descriptor(lum: np.ndarray) -> np.ndarray:
    blocks = _blocks(lum, TEXTURE_BLOCK)
    if blocks.size == 0:
        return np.zeros(3, dtype=np.float64)

    variance = blocks.var(axis=2)
    contrast = blocks.max(axis=2) - blocks.min(axis=2)
    homogeneity = 1.0 / (1.0 + np.sqrt(variance))

    return np.array([
        variance.mean() / BLOCK_VARIANCE_NORMALIZER,
        contrast.mean() / BLOCK_CONTRAST_NORMALIZER,
        homogeneity.mean(),
    ])


def texture_energy_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    """Compare mean 8x8 block variance, contrast and homogeneity."""
    delta = np.abs(_texture_descriptor(lum1) - _texture_descriptor(lum2)).mean()
    return max(0.0, 1.0 - float(delta))


def _roughness(lum: np.ndarray) -> float:
    """Mean over sampled pixels of the std of differences to the 8 neighbours."""
    h, w = lum.shape
    if h < 3 or w < 3:
        return 0.0

    center = lum[1:h - 1, 1:w - 1][::ROUGHNESS_STEP, ::ROUGHNESS_STEP]
    diffs = np.stack([
        lum[1 + dy:h - 1 + dy, 1 + dx:w - 1 + dx][::ROUGHNESS_STEP, ::ROUGHNESS_STEP] - center
        for dy, dx in _NEIGHBOURS
    ])
    return float(diffs.std(axis=0).mean())


def surface_roughness_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    delta = abs(_roughness(lum1) - _roughness(lum2)) / ROUGHNESS_NORMALIZER
    return max(0.0, 1.0 - delta)


def _gloss(lum: np.ndarray):
    """Bright-pixel ratio and the rate of bright/dark flips between neighbours."""
    bright = lum > GLOSS_BRIGHT_THRESHOLD
    if bright.size == 0:
        return 0.0, 0.0

    ratio = float(bright.mean())
    flips = []
    if bright.shape[1] > 1:
        flips.append((bright[:, 1:] != bright[:, :-1]).mean())
    if bright.shape[0] > 1:
        flips.append((bright[1:, :] != bright[:-1, :]).mean())
    transitions = float(np.mean(flips)) if flips else 0.0
    return ratio, transitions


def gloss_pattern_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    ratio1, transitions1 = _gloss(lum1)
    ratio2, transitions2 = _gloss(lum2)
    delta = (0.5 * abs(ratio1 - ratio2)
             + 0.5 * abs(transitions1 - transitions2) / GLOSS_TRANSITION_NORMALIZER)
    return max(0.0, 1.0 - delta)


def local_variance_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    """Block-by-block comparison of 16x16 luminance variance maps."""
    v1 = _blocks(lum1, VARIANCE_BLOCK).var(axis=2)
    v2 = _blocks(lum2, VARIANCE_BLOCK).var(axis=2)
    rows = min(v1.shape[0], v2.shape[0])
    cols = min(v1.shape[1], v2.shape[1])
    if rows == 0 or cols == 0:
        return 0.0

    delta = np.abs(v1[:rows, :cols] - v2[:rows, :cols]).mean()
    return max(0.0, 1.0 - float(delta) / LOCAL_VARIANCE_NORMALIZER)


def _high_frequency_energy(lum: np.ndarray) -> float:
    if lum.shape[0] < 3 or lum.shape[1] < 3:
        return 0.0
    laplacian = cv2.Laplacian(lum, cv2.CV_64F, ksize=1)
    return float(np.abs(laplacian[1:-1, 1:-1]).mean())


def high_frequency_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    delta = abs(_high_frequency_energy(lum1) - _high_frequency_energy(lum2))
    return max(0.0, 1.0 - delta / HIGH_FREQUENCY_NORMALIZER)


def _edge_irregularity(lum: np.ndarray) -> float:
    if lum.shape[0] < 5 or lum.shape[1] < 5:
        return 0.0

    m = gradient_magnitude(lum)[1:-1, 1:-1]
    neighbour_mean = (m[:-2, 1:-1] + m[2:, 1:-1] + m[1:-1, :-2] + m[1:-1, 2:]) / 4.0
    return float(np.abs(m[1:-1, 1:-1] - neighbour_mean).mean())


def edge_irregularity_similarity(lum1: np.ndarray, lum2: np.ndarray) -> float:
    delta = abs(_edge_irregularity(lum1) - _edge_irregularity(lum2))
    return max(0.0, 1.0 - delta / EDGE_IRREGULARITY_NORMALIZER)


SUB_METRICS = {
    "texture": texture_energy_similarity,
    "roughness": surface_roughness_similarity,
    "gloss": gloss_pattern_similarity,
    "variance": local_variance_similarity,
    "high_frequency": high_frequency_similarity,
    "edge_irregularity": edge_irregularity_similarity,
}


def texture_similarity_bundle(buffer1: PixelBuffer,
                              buffer2: PixelBuffer) -> Dict[str, float]:
    """
    Run every texture sub-metric on two canonical buffers.

    Returns:
        Dict of sub-metric name to similarity in [0, 1]. A sub-metric that
        fails or yields a non-finite value scores 0.0.
    """
    lum1 = luminance(buffer1)
    lum2 = luminance(buffer2)

    scores = {}
    for name, metric in SUB_METRICS.items():
        try:
            score = metric(lum1, lum2)
            scores[name] = float(min(1.0, score)) if np.isfinite(score) else 0.0
        except Exception as e:
            logger.error(f"Texture sub-metric '{name}' failed: {e}")
            scores[name] = 0.0
    return scores
