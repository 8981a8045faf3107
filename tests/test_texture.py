"""Tests for the flash texture similarity bundle."""

import numpy as np
import pytest

from surface_inspection.metrics import luminance
from surface_inspection.texture import (
    SUB_METRICS, edge_irregularity_similarity, gloss_pattern_similarity,
    high_frequency_similarity, local_variance_similarity, surface_roughness_similarity,
    texture_energy_similarity, texture_similarity_bundle,
)


class TestTextureBundle:
    """Bundle-level properties."""

    def test_has_every_sub_metric(self, buffer_of, noise_image):
        buffer = buffer_of(noise_image)
        scores = texture_similarity_bundle(buffer, buffer)
        assert set(scores) == set(SUB_METRICS)

    def test_identity(self, buffer_of, flash_image):
        buffer = buffer_of(flash_image)
        scores = texture_similarity_bundle(buffer, buffer)
        for name, score in scores.items():
            assert score == pytest.approx(1.0, abs=1e-3), name

    def test_symmetric(self, buffer_of, noise_image, textured_image):
        a, b = buffer_of(noise_image), buffer_of(textured_image)
        assert texture_similarity_bundle(a, b) == texture_similarity_bundle(b, a)

    def test_range(self, buffer_of, white_image, black_image, noise_image, textured_image):
        images = [buffer_of(img) for img in
                  (white_image, black_image, noise_image, textured_image)]
        for a in images:
            for b in images:
                for name, score in texture_similarity_bundle(a, b).items():
                    assert 0.0 <= score <= 1.0, name


class TestSubMetrics:
    """Each sub-metric reacts to the surface property it measures."""

    def test_texture_energy_flat_vs_noise(self, buffer_of, gray_image, noise_image):
        flat = luminance(buffer_of(gray_image))
        noisy = luminance(buffer_of(noise_image))
        assert texture_energy_similarity(flat, noisy) < 0.9

    def test_roughness_flat_vs_noise(self, buffer_of, gray_image, noise_image):
        flat = luminance(buffer_of(gray_image))
        noisy = luminance(buffer_of(noise_image))
        assert surface_roughness_similarity(flat, noisy) == 0.0

    def test_roughness_ignores_brightness(self, buffer_of, white_image, black_image):
        assert surface_roughness_similarity(
            luminance(buffer_of(white_image)), luminance(buffer_of(black_image))) == 1.0

    def test_gloss_bright_vs_dark(self, buffer_of, white_image, black_image):
        score = gloss_pattern_similarity(
            luminance(buffer_of(white_image)), luminance(buffer_of(black_image)))
        # Bright ratio differs fully; neither image has transitions.
        assert score == pytest.approx(0.5)

    def test_local_variance_detects_localized_texture(self, buffer_of, gray_image,
                                                      noise_image):
        patched = gray_image.copy()
        patched[:64, :64] = noise_image[:64, :64]
        score = local_variance_similarity(
            luminance(buffer_of(gray_image)), luminance(buffer_of(patched)))
        assert score < 1.0

    def test_high_frequency_flat_vs_noise(self, buffer_of, gray_image, noise_image):
        score = high_frequency_similarity(
            luminance(buffer_of(gray_image)), luminance(buffer_of(noise_image)))
        assert score == 0.0

    def test_edge_irregularity_flat_vs_checkerboard(self, buffer_of, gray_image,
                                                    textured_image):
        flat = luminance(buffer_of(gray_image))
        assert edge_irregularity_similarity(flat, flat) == 1.0
        score = edge_irregularity_similarity(flat, luminance(buffer_of(textured_image)))
        assert score < 1.0

    def test_small_input_does_not_raise(self):
        tiny = np.full((2, 2), 100.0)
        for metric in SUB_METRICS.values():
            assert 0.0 <= metric(tiny, tiny) <= 1.0
