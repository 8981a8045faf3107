"""Tests for best-reference matching."""

import pytest

from surface_inspection.errors import DecodeError
from surface_inspection.matcher import SampleMatcher, find_similar_sample
from surface_inspection.models import DefectCategory, MatchResult
from surface_inspection.scoring import calculate_image_similarity


class TestDecide:
    """Threshold application on per-reference scores."""

    def test_empty_scores(self):
        assert SampleMatcher.decide([], 0.5) == MatchResult(False, 0.0, None)

    def test_all_references_failed(self):
        assert SampleMatcher.decide([None, None], 0.5) == MatchResult(False, 0.0, None)

    def test_takes_maximum(self):
        result = SampleMatcher.decide([0.2, None, 0.8, 0.6], 0.5)
        assert result.max_confidence == 0.8
        assert result.best_index == 2
        assert result.is_match

    def test_threshold_is_inclusive(self):
        assert SampleMatcher.decide([0.65], 0.65).is_match

    def test_threshold_monotonicity(self):
        scores = [0.41, 0.57, 0.73]
        thresholds = [0.30, 0.45, 0.57, 0.60, 0.73, 0.74, 0.90]
        matches = [SampleMatcher.decide(scores, t).is_match for t in thresholds]
        # Once a higher threshold rejects, no higher one accepts again.
        first_false = matches.index(False)
        assert all(not m for m in matches[first_false:])
        assert all(matches[:first_false])


class TestSampleMatcher:

    def test_no_references(self, png_of, dark_spot_image):
        result = SampleMatcher().match(png_of(dark_spot_image), [], 0.5)
        assert result == MatchResult(is_match=False, max_confidence=0.0, best_index=None)

    def test_dark_spot_scenario(self, png_of, dark_spot_image):
        reference = png_of(dark_spot_image)
        result = SampleMatcher().match(png_of(dark_spot_image), [reference], 0.5,
                                       DefectCategory.DARK_SPOT)
        assert result.is_match
        assert result.max_confidence >= 0.5

    def test_best_reference_wins(self, png_of, dark_spot_image, noise_image, black_image):
        references = [png_of(noise_image), png_of(dark_spot_image), png_of(black_image)]
        result = SampleMatcher(max_workers=2).match(png_of(dark_spot_image), references, 0.9)
        assert result.best_index == 1
        assert result.max_confidence == pytest.approx(1.0, abs=1e-3)

    def test_corrupt_reference_skipped(self, png_of, dark_spot_image):
        references = [b"corrupt", png_of(dark_spot_image), "data:image/png;base64,@@@"]
        result = SampleMatcher().match(png_of(dark_spot_image), references, 0.5)
        assert result.is_match
        assert result.best_index == 1

    def test_only_corrupt_references(self, png_of, dark_spot_image):
        result = SampleMatcher().match(png_of(dark_spot_image), [b"corrupt"], 0.3)
        assert result == MatchResult(False, 0.0, None)

    def test_scores_keep_reference_order(self, png_of, dark_spot_image, white_image):
        scores = SampleMatcher(max_workers=1).score_references(
            png_of(dark_spot_image),
            [png_of(white_image), b"bad", png_of(dark_spot_image)],
            DefectCategory.SCRATCH,
        )
        assert scores[1] is None
        assert scores[2] == pytest.approx(1.0, abs=1e-3)
        assert scores[0] < scores[2]

    def test_flash_category_uses_texture(self, png_of, flash_image):
        payload = png_of(flash_image)
        result = SampleMatcher().match(payload, [payload], 0.65, DefectCategory.FLASH)
        assert result.is_match
        assert result.max_confidence == pytest.approx(1.0, abs=1e-3)

    def test_accepts_pixel_buffers(self, buffer_of, dark_spot_image):
        buffer = buffer_of(dark_spot_image)
        result = SampleMatcher().match(buffer, [buffer], 0.5)
        assert result.is_match

    def test_bad_frame_raises(self, png_of, dark_spot_image):
        with pytest.raises(DecodeError):
            SampleMatcher().match(b"nope", [png_of(dark_spot_image)], 0.5)

    def test_threshold_monotonic_on_real_images(self, png_of, dark_spot_image,
                                                 white_image):
        matcher = SampleMatcher()
        frame = png_of(white_image)
        references = [png_of(dark_spot_image)]
        previous = True
        for threshold in (0.30, 0.45, 0.55, 0.70, 0.90):
            current = matcher.match(frame, references, threshold).is_match
            assert previous or not current
            previous = current


class TestFindSimilarSample:

    def test_default_threshold(self, png_of, gray_image):
        payload = png_of(gray_image)
        result = find_similar_sample(payload, [payload])
        assert result.is_match
        assert result.max_confidence >= 0.99

    @pytest.mark.parametrize("category", [DefectCategory.DARK_SPOT, DefectCategory.SCRATCH])
    def test_agrees_with_pairwise_similarity(self, png_of, dark_spot_image, noise_image,
                                             category):
        frame = png_of(dark_spot_image)
        reference = png_of(noise_image)
        result = SampleMatcher().match(frame, [reference], 0.5, category)
        assert result.max_confidence == calculate_image_similarity(frame, reference, category)
