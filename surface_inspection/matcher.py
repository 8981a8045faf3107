"""
Nearest-reference matching for one defect category.

A frame matches a category when it resembles any registered reference
closely enough: the best single similarity is compared against the
category threshold. References are scored independently, so they are
decoded and compared concurrently; a reference that cannot be decoded
is skipped rather than failing the whole category.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from .errors import InspectionError
from .histograms import (build_reference_index, histogram_fingerprint,
                         search_reference_index)
from .models import DefectCategory, MatchResult, PixelBuffer
from .preprocessing import CANONICAL_SIZE, load_canonical
from .scoring import similarity_breakdown, uses_histogram

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = int(os.environ.get("MATCHER_MAX_WORKERS", "4"))


class SampleMatcher:
    """
    Scores a frame against a category's references and applies its threshold.

    Holds no per-call state; one instance can serve concurrent callers.
    """

    def __init__(self, max_workers: Optional[int] = None,
                 canonical_size: int = CANONICAL_SIZE):
        """
        Args:
            max_workers: Threads used to decode and score references.
                1 runs everything on the calling thread.
            canonical_size: Side of the square comparison grid.
        """
        self.max_workers = max_workers or DEFAULT_MAX_WORKERS
        self.canonical_size = canonical_size

    def _map(self, fn, items):
        if self.max_workers == 1 or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(fn, items))

    def _load_reference(self, reference) -> Optional[PixelBuffer]:
        try:
            return load_canonical(reference, self.canonical_size)
        except InspectionError as e:
            logger.warning(f"Skipping undecodable reference: {e}")
            return None

    def score_references(self,
                         frame: PixelBuffer,
                         references: Sequence,
                         category: DefectCategory) -> List[Optional[float]]:
        """
        Similarity of the frame to each reference.

        Args:
            frame: Frame buffer (canonicalized here if needed).
            references: Encoded images, data URLs, or PixelBuffers.
            category: Selects the metric bundle.

        Returns:
            One score per reference, in order; None where the reference
            could not be decoded.

        The histogram component comes from a float32 FAISS search, rounded
        to SCORE_DECIMALS places like the pairwise path, so each score
        equals calculate_image_similarity() for the same pair.
        """
        category = DefectCategory.parse(category)
        references = tuple(references)
        if not references:
            return []

        frame = load_canonical(frame, self.canonical_size)
        buffers = self._map(self._load_reference, references)
        valid = [i for i, buffer in enumerate(buffers) if buffer is not None]
        if not valid:
            return [None] * len(references)

        precomputed = [{} for _ in valid]
        if uses_histogram(category):
            # One exact inner-product search covers every reference.
            index = build_reference_index(
                [histogram_fingerprint(buffers[i]) for i in valid])
            histogram_scores = search_reference_index(
                index, histogram_fingerprint(frame))
            precomputed = [{"histogram": float(s)} for s in histogram_scores]

        def _score(position):
            buffer = buffers[valid[position]]
            return similarity_breakdown(
                frame, buffer, category, precomputed=precomputed[position]).total

        scores: List[Optional[float]] = [None] * len(references)
        for position, score in enumerate(self._map(_score, list(range(len(valid))))):
            scores[valid[position]] = score
        return scores

    @staticmethod
    def decide(scores: Sequence[Optional[float]], threshold: float) -> MatchResult:
        """Reduce per-reference scores to the best match and apply the threshold."""
        usable = [(i, s) for i, s in enumerate(scores) if s is not None]
        if not usable:
            return MatchResult(is_match=False, max_confidence=0.0, best_index=None)

        best_index, best = max(usable, key=lambda item: item[1])
        return MatchResult(
            is_match=bool(best >= threshold),
            max_confidence=float(best),
            best_index=best_index,
        )

    def match(self,
              frame,
              references: Sequence,
              threshold: float,
              category: DefectCategory = DefectCategory.DARK_SPOT) -> MatchResult:
        """
        Decide whether a frame resembles any reference of a category.

        With no (decodable) references the result is never a match and
        has confidence 0.0.

        Raises:
            DecodeError: If the frame itself cannot be decoded.
            UnsupportedFormatError: If the frame's pixels cannot be extracted.
        """
        scores = self.score_references(frame, references, category)
        result = self.decide(scores, threshold)
        logger.debug(
            f"Matched {DefectCategory.parse(category).value} against "
            f"{len(scores)} references: max={result.max_confidence:.3f}, "
            f"threshold={threshold}, match={result.is_match}"
        )
        return result


def find_similar_sample(image,
                        sample_images: Sequence,
                        threshold: float = 0.7,
                        category: DefectCategory = DefectCategory.DARK_SPOT) -> MatchResult:
    """Functional shortcut for SampleMatcher().match()."""
    return SampleMatcher().match(image, sample_images, threshold, category)
