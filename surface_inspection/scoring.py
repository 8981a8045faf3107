"""
Weighted similarity scoring between a frame and a reference image.

Fuses the independent metrics into a single confidence in [0, 1]. Each
defect category has its own weighting profile: dark spots and scratches
are judged on color, structure and edges; flash is judged on surface
texture statistics. Weights within a profile sum to 1.0.
"""

import logging
from typing import Callable, Dict, Mapping, Optional

from .errors import InspectionError
from .histograms import histogram_similarity
from .metrics import (color_similarity, edge_similarity, patch_similarity,
                      structural_similarity)
from .models import DefectCategory, PixelBuffer, SimilarityBreakdown
from .preprocessing import CANONICAL_SIZE, load_canonical
from .texture import texture_similarity_bundle

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = {
    "histogram": 0.25,
    "structural": 0.30,
    "edge": 0.20,
    "patch": 0.15,
    "color": 0.10,
}

TEXTURE_PROFILE = {
    "texture": 0.30,
    "roughness": 0.25,
    "gloss": 0.15,
    "variance": 0.15,
    "high_frequency": 0.10,
    "edge_irregularity": 0.05,
}

CATEGORY_WEIGHTS = {
    DefectCategory.DARK_SPOT: DEFAULT_PROFILE,
    DefectCategory.SCRATCH: DEFAULT_PROFILE,
    DefectCategory.FLASH: TEXTURE_PROFILE,
}

_DEFAULT_METRICS: Dict[str, Callable[[PixelBuffer, PixelBuffer], float]] = {
    "histogram": histogram_similarity,
    "structural": structural_similarity,
    "edge": edge_similarity,
    "patch": patch_similarity,
    "color": color_similarity,
}


def uses_histogram(category: DefectCategory) -> bool:
    """Whether the category's profile includes the histogram component."""
    return "histogram" in CATEGORY_WEIGHTS[category]


def _component_scores(buffer1: PixelBuffer,
                      buffer2: PixelBuffer,
                      category: DefectCategory,
                      precomputed: Optional[Mapping[str, float]]) -> Dict[str, float]:
    precomputed = precomputed or {}
    if CATEGORY_WEIGHTS[category] is TEXTURE_PROFILE:
        return texture_similarity_bundle(buffer1, buffer2)

    scores = {}
    for name, metric in _DEFAULT_METRICS.items():
        if name in precomputed:
            scores[name] = float(precomputed[name])
        else:
            scores[name] = metric(buffer1, buffer2)
    return scores


def similarity_breakdown(buffer1: PixelBuffer,
                         buffer2: PixelBuffer,
                         category: DefectCategory = DefectCategory.DARK_SPOT,
                         weights: Optional[Mapping[str, float]] = None,
                         precomputed: Optional[Mapping[str, float]] = None
                         ) -> SimilarityBreakdown:
    """
    Score two canonical buffers and keep every component.

    Args:
        buffer1: Canonical frame buffer.
        buffer2: Canonical reference buffer of the same size.
        category: Selects the weighting profile and metric bundle.
        weights: Optional override for the category's profile.
        precomputed: Component scores already known to the caller (the
            matcher passes histogram scores from its FAISS search).

    Returns:
        SimilarityBreakdown with the total clamped to [0, 1].
    """
    category = DefectCategory.parse(category)
    if weights is None:
        weights = CATEGORY_WEIGHTS[category]
    components = _component_scores(buffer1, buffer2, category, precomputed)

    total = sum(weights[name] * components.get(name, 0.0) for name in weights)
    total = min(1.0, max(0.0, total))

    logger.debug(
        f"Similarity breakdown [{category.value}]: "
        + ", ".join(f"{k}={v:.3f}" for k, v in components.items())
        + f", total={total:.3f}"
    )
    return SimilarityBreakdown(category=category, components=components, total=total)


def calculate_image_similarity(image1,
                               image2,
                               category: DefectCategory = DefectCategory.DARK_SPOT,
                               size: int = CANONICAL_SIZE) -> float:
    """
    Similarity of two images in [0, 1], 1 meaning identical.

    Both sides are decoded (if encoded) and stretched to ``size``.
    Returns 0.0 when either image cannot be decoded.
    """
    try:
        buffer1 = load_canonical(image1, size)
        buffer2 = load_canonical(image2, size)
    except InspectionError as e:
        logger.error(f"Image similarity calculation failed: {e}")
        return 0.0

    return similarity_breakdown(buffer1, buffer2, category).total
