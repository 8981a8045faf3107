"""
Defect decision engine.

Orchestrates one inspection pass over a captured frame:
    1. Decode the frame at native resolution
    2. Scan pixels for dark and color-irregular regions (bounding boxes)
    3. Canonicalize the frame once for all comparisons
    4. Match the frame against each category's references, concurrently
    5. Emit a DefectDetail for every category whose threshold is reached

Categories are independent; results are collected per category and
reported in DefectCategory order, so the first entry is the primary
classification regardless of which comparison finished first.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .matcher import SampleMatcher
from .models import (DefectCategory, DefectDetail, InspectionReport,
                     PixelBuffer, PixelFeatures, ReferenceSample)
from .pixel_features import analyze_pixels
from .preprocessing import CANONICAL_SIZE, decode_image, to_canonical
from .thresholds import ThresholdConfig, load_thresholds

logger = logging.getLogger(__name__)

RESULT_OK = "OK"
RESULT_NG = "NG"


def snapshot_samples(samples: Iterable[ReferenceSample]
                     ) -> Dict[DefectCategory, Tuple[ReferenceSample, ...]]:
    """
    Group samples by category into immutable tuples.

    Taken once at the start of a pass, so registrations or deletions made
    while the pass runs cannot change what it compares against. Stored
    sample dicts are accepted as-is and converted; a malformed entry is
    logged and left out.
    """
    grouped: Dict[DefectCategory, list] = {category: [] for category in DefectCategory}
    for sample in list(samples or ()):
        try:
            if isinstance(sample, Mapping):
                sample = ReferenceSample.from_dict(sample)
            category = DefectCategory.parse(sample.category)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed reference sample: {e}")
            continue
        grouped[category].append(sample)
    return {category: tuple(items) for category, items in grouped.items()}


class DefectDecisionEngine:
    """
    Turns a frame plus registered references into a list of detected defects.

    Holds configuration only; every call works on its own buffers, so an
    engine is safe to share between threads and across polling intervals.
    """

    def __init__(self,
                 thresholds=None,
                 max_workers: Optional[int] = None,
                 canonical_size: int = CANONICAL_SIZE):
        """
        Args:
            thresholds: ThresholdConfig or raw stored settings; defaults
                apply to anything missing.
            max_workers: Threads for category- and reference-level work.
            canonical_size: Side of the square comparison grid.
        """
        self.thresholds = load_thresholds(thresholds)
        self.max_workers = max_workers
        self.canonical_size = canonical_size
        self.matcher = SampleMatcher(max_workers=max_workers,
                                     canonical_size=canonical_size)

    @staticmethod
    def _location(category: DefectCategory, features: PixelFeatures):
        if category is DefectCategory.FLASH:
            return features.irregular_box
        return features.dark_spot_box

    def _analyze(self, frame, samples, thresholds
                 ) -> Tuple[List[DefectDetail], PixelFeatures]:
        config: ThresholdConfig = (self.thresholds if thresholds is None
                                   else load_thresholds(thresholds))
        native = frame if isinstance(frame, PixelBuffer) else decode_image(frame)
        features = analyze_pixels(native)
        canonical = to_canonical(native, self.canonical_size)

        snapshot = snapshot_samples(samples)
        active = [c for c in DefectCategory if snapshot[c]]
        if not active:
            logger.info("No references registered; frame passes")
            return [], features

        def _evaluate(category):
            references = [sample.image for sample in snapshot[category]]
            return self.matcher.match(
                canonical, references, config.get(category), category)

        with ThreadPoolExecutor(max_workers=self.max_workers or len(active)) as executor:
            results = dict(zip(active, executor.map(_evaluate, active)))

        defects = []
        for category in active:
            result = results[category]
            if result.is_match:
                defects.append(DefectDetail(
                    category=category,
                    confidence=result.max_confidence,
                    location=self._location(category, features),
                ))

        logger.info(
            f"Inspection pass: {len(active)} categories compared, "
            f"{len(defects)} defects"
            + "".join(f", {d.category.value}={d.confidence:.3f}" for d in defects)
        )
        return defects, features

    def analyze(self, frame, samples: Iterable[ReferenceSample],
                thresholds=None) -> List[DefectDetail]:
        """
        Detect defects in one frame.

        Args:
            frame: Encoded frame bytes or data URL, any resolution.
            samples: Every currently registered ReferenceSample.
            thresholds: Optional per-call override of the engine's thresholds.

        Returns:
            DefectDetail list in category order; empty means the frame passes.

        Raises:
            DecodeError: If the frame cannot be decoded.
            UnsupportedFormatError: If the frame's pixels cannot be extracted.
        """
        defects, _ = self._analyze(frame, samples, thresholds)
        return defects

    def inspect(self, frame, samples: Iterable[ReferenceSample],
                thresholds=None) -> InspectionReport:
        """Like analyze(), wrapped in an OK/NG report with the pixel features."""
        defects, features = self._analyze(frame, samples, thresholds)
        return InspectionReport(
            result=RESULT_NG if defects else RESULT_OK,
            defects=defects,
            features=features,
        )

    def inspect_all(self, frames: Iterable, samples: Iterable[ReferenceSample],
                    thresholds=None) -> List[DefectDetail]:
        """
        Analyze every captured face of an object and concatenate the defects.

        Samples are snapshotted once so all faces see the same references.
        """
        snapshot = [s for items in snapshot_samples(samples).values() for s in items]
        defects: List[DefectDetail] = []
        for frame in frames:
            defects.extend(self.analyze(frame, snapshot, thresholds))
        return defects
