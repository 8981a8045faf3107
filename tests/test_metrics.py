"""Tests for the structural, edge, patch and color similarity metrics."""

import numpy as np
import pytest

from surface_inspection.histograms import histogram_similarity
from surface_inspection.metrics import (
    color_similarity, edge_similarity, luminance, patch_similarity,
    sobel_magnitudes, structural_similarity,
)

ALL_METRICS = [
    histogram_similarity,
    structural_similarity,
    edge_similarity,
    patch_similarity,
    color_similarity,
]


@pytest.mark.parametrize("metric", ALL_METRICS, ids=lambda m: m.__name__)
class TestMetricProperties:
    """Identity, symmetry and range for every metric."""

    def test_identity(self, metric, buffer_of, noise_image):
        buffer = buffer_of(noise_image)
        assert metric(buffer, buffer) == pytest.approx(1.0, abs=1e-3)

    def test_identity_on_flat_image(self, metric, buffer_of, gray_image):
        buffer = buffer_of(gray_image)
        assert metric(buffer, buffer) == pytest.approx(1.0, abs=1e-3)

    def test_symmetric(self, metric, buffer_of, noise_image, other_noise_image):
        a, b = buffer_of(noise_image), buffer_of(other_noise_image)
        assert metric(a, b) == metric(b, a)

    def test_symmetric_mixed_content(self, metric, buffer_of, dark_spot_image,
                                     textured_image):
        a, b = buffer_of(dark_spot_image), buffer_of(textured_image)
        assert metric(a, b) == metric(b, a)

    def test_range_on_degenerate_inputs(self, metric, buffer_of, white_image,
                                        black_image, noise_image):
        images = [buffer_of(white_image), buffer_of(black_image), buffer_of(noise_image)]
        for a in images:
            for b in images:
                score = metric(a, b)
                assert 0.0 <= score <= 1.0
                assert not np.isnan(score)


class TestStructuralSimilarity:

    def test_white_vs_black_near_zero(self, buffer_of, white_image, black_image):
        score = structural_similarity(buffer_of(white_image), buffer_of(black_image))
        assert score < 0.01

    def test_grid_sampling_ignores_off_grid_pixels(self, buffer_of, gray_image):
        marked = gray_image.copy()
        marked[3, 3] = 0  # not on the 8x8 grid
        score = structural_similarity(buffer_of(gray_image), buffer_of(marked))
        assert score == pytest.approx(1.0)


class TestEdgeSimilarity:

    def test_magnitude_count(self, buffer_of, noise_image):
        edges = sobel_magnitudes(buffer_of(noise_image))
        # Interior 254 pixels per axis, every 2nd one.
        assert edges.shape == (127 * 127,)

    def test_flat_images_that_differ_score_zero(self, buffer_of, white_image, black_image):
        assert edge_similarity(buffer_of(white_image), buffer_of(black_image)) == 0.0

    def test_flat_vs_textured_scores_zero(self, buffer_of, gray_image, textured_image):
        assert edge_similarity(buffer_of(gray_image), buffer_of(textured_image)) == 0.0

    def test_inverted_edges_still_correlate(self, buffer_of, textured_image):
        inverted = 255 - textured_image
        score = edge_similarity(buffer_of(textured_image), buffer_of(inverted))
        # Sobel magnitude ignores edge polarity.
        assert score == pytest.approx(1.0, abs=1e-6)


class TestPatchSimilarity:

    def test_white_vs_black_zero(self, buffer_of, white_image, black_image):
        assert patch_similarity(buffer_of(white_image), buffer_of(black_image)) == 0.0

    def test_small_local_change_scores_high(self, buffer_of, white_image, dark_spot_image):
        score = patch_similarity(buffer_of(white_image), buffer_of(dark_spot_image))
        assert 0.99 < score < 1.0


class TestColorSimilarity:

    def test_white_vs_black_half(self, buffer_of, white_image, black_image):
        # Value differs fully, saturation is zero on both.
        score = color_similarity(buffer_of(white_image), buffer_of(black_image))
        assert score == pytest.approx(0.5)

    def test_saturated_vs_gray(self, buffer_of, gray_image):
        red = np.zeros_like(gray_image)
        red[:, :, 0] = 255
        score = color_similarity(buffer_of(gray_image), buffer_of(red))
        assert score < 0.5


class TestLuminance:

    def test_bt601_weights(self, buffer_of):
        img = np.zeros((4, 4, 3), dtype=np.uint8)
        img[:, :, 1] = 100
        assert np.allclose(luminance(buffer_of(img)), 58.7)
