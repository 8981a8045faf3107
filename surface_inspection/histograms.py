"""
RGB histogram comparison and FAISS-backed reference scoring.

Each image is summarized by three normalized 256-bin channel histograms
and compared with the Bhattacharyya coefficient, averaged over R, G
and B. The coefficient is an inner product of square-rooted histograms,
so the same score can be computed for a frame against every reference
of a category with one exact FAISS inner-product search.
"""

import logging
from typing import Sequence

import faiss
import numpy as np

from .models import PixelBuffer

logger = logging.getLogger(__name__)

HIST_BINS = 256
CHANNELS = 3
FINGERPRINT_DIM = HIST_BINS * CHANNELS

# Pairwise (float64) and indexed (float32) scores agree to this many places.
SCORE_DECIMALS = 5


def rgb_histograms(buffer: PixelBuffer) -> np.ndarray:
    """
    Per-channel normalized histograms.

    Returns:
        Float64 array of shape (3, 256); each row sums to 1.
    """
    flat = buffer.rgb.reshape(-1, CHANNELS)
    total = max(flat.shape[0], 1)
    hists = np.stack([
        np.bincount(flat[:, c], minlength=HIST_BINS) for c in range(CHANNELS)
    ]).astype(np.float64)
    return hists / total


def histogram_similarity(buffer1: PixelBuffer, buffer2: PixelBuffer) -> float:
    """
    Bhattacharyya coefficient of the RGB histograms, averaged over channels.

    Returns:
        Similarity in [0, 1] rounded to SCORE_DECIMALS places; 1 for
        identical distributions. 0.0 on failure.
    """
    try:
        h1 = rgb_histograms(buffer1)
        h2 = rgb_histograms(buffer2)
        bc = np.sqrt(h1 * h2).sum(axis=1)
        score = float(bc.mean())
        if not np.isfinite(score):
            return 0.0
        return float(np.round(min(1.0, max(0.0, score)), SCORE_DECIMALS))

    except Exception as e:
        logger.error(f"Histogram comparison failed: {e}")
        return 0.0


def histogram_fingerprint(buffer: PixelBuffer) -> np.ndarray:
    """
    Flattened sqrt-histogram vector whose inner product is the similarity.

    ``dot(fingerprint(a), fingerprint(b))`` equals histogram_similarity(a, b)
    up to float32 rounding.

    Returns:
        Float32 vector with FINGERPRINT_DIM entries.
    """
    hists = rgb_histograms(buffer)
    return (np.sqrt(hists) / np.sqrt(CHANNELS)).reshape(-1).astype(np.float32)


def build_reference_index(fingerprints: Sequence[np.ndarray]) -> faiss.Index:
    """
    Exact inner-product index over reference fingerprints.

    Position i in the index is fingerprints[i].
    """
    index = faiss.IndexFlatIP(FINGERPRINT_DIM)
    if len(fingerprints):
        data = np.vstack(fingerprints).astype(np.float32)
        index.add(data)
    return index


def search_reference_index(index: faiss.Index,
                           query_fingerprint: np.ndarray) -> np.ndarray:
    """
    Histogram similarity of a query against every indexed reference.

    Args:
        index: Index built by build_reference_index().
        query_fingerprint: Fingerprint of the frame.

    Returns:
        Float64 array of length index.ntotal, in insertion order, each
        value clamped to [0, 1] and rounded like histogram_similarity(),
        so both paths give the same score for the same pair.

    Raises:
        ValueError: If query dimensions don't match index.
    """
    query = np.ascontiguousarray(query_fingerprint, dtype=np.float32).reshape(1, -1)

    if query.shape[1] != index.d:
        raise ValueError(
            f"Query dimension {query.shape[1]} doesn't match "
            f"index dimension {index.d}"
        )

    scores = np.zeros(index.ntotal, dtype=np.float64)
    if index.ntotal == 0:
        return scores

    similarities, indices = index.search(query, index.ntotal)
    for similarity, idx in zip(similarities[0], indices[0]):
        if idx >= 0:
            scores[idx] = similarity

    scores[~np.isfinite(scores)] = 0.0
    return np.round(np.clip(scores, 0.0, 1.0), SCORE_DECIMALS)
