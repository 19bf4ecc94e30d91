"""Tests for feature extraction and descriptor matching."""

import cv2
import numpy as np
import pytest

from rigloc.errors import ConfigurationError
from rigloc.localization.features import (
    create_describer,
    descriptor_norm,
    extract_features,
    match_descriptors,
)


@pytest.fixture
def textured_image():
    rng = np.random.default_rng(3)
    noise = rng.integers(0, 256, size=(240, 320), dtype=np.uint8)
    return cv2.GaussianBlur(noise, (5, 5), 1.5)


@pytest.mark.parametrize("describer_type", ["sift", "akaze", "orb"])
def test_extract_features(textured_image, describer_type):
    describer = create_describer(describer_type, 200)
    features = extract_features(textured_image, describer, 200)
    assert 0 < len(features) <= 200
    assert features.keypoints.shape == (len(features), 2)
    assert features.descriptors.shape[0] == len(features)


def test_extract_features_blank_image():
    describer = create_describer("sift")
    features = extract_features(np.zeros((64, 64), np.uint8), describer)
    assert len(features) == 0
    assert features.descriptors.shape == (0, 128)


def test_unknown_describer():
    with pytest.raises(ValueError, match="Unknown describer type"):
        create_describer("surf")


def test_akaze_unavailable(monkeypatch):
    """OpenCV builds without AKAZE give a configuration error, not an AttributeError."""
    monkeypatch.delattr(cv2, "AKAZE_create", raising=False)
    with pytest.raises(ConfigurationError, match="akaze"):
        create_describer("akaze")


def test_descriptor_norm():
    assert descriptor_norm("sift") == cv2.NORM_L2
    assert descriptor_norm("orb") == cv2.NORM_HAMMING
    assert descriptor_norm("akaze") == cv2.NORM_HAMMING


class TestMatchDescriptors:
    """Tests for match_descriptors()."""

    def test_matches_permuted_descriptors(self):
        rng = np.random.default_rng(0)
        train = rng.normal(size=(50, 32)).astype(np.float32)
        perm = rng.permutation(50)
        query = train[perm] + 0.01
        matches = match_descriptors(query, train, cv2.NORM_L2)
        assert len(matches) == 50
        np.testing.assert_array_equal(matches[:, 0], np.arange(50))
        np.testing.assert_array_equal(matches[:, 1], perm)

    def test_ratio_test_rejects_ambiguous(self):
        train = np.array([[0.0, 0.0], [0.0, 0.1], [10.0, 10.0]], dtype=np.float32)
        query = np.array([[0.0, 0.05], [10.0, 10.1]], dtype=np.float32)
        matches = match_descriptors(query, train, cv2.NORM_L2, ratio_threshold=0.8)
        assert matches.tolist() == [[1, 2]]

    def test_train_feature_used_once(self):
        train = np.array([[0.0, 0.0], [10.0, 10.0]], dtype=np.float32)
        query = np.array([[0.2, 0.0], [0.1, 0.0]], dtype=np.float32)
        matches = match_descriptors(query, train, cv2.NORM_L2)
        assert matches.tolist() == [[1, 0]]

    def test_binary_descriptors(self):
        rng = np.random.default_rng(5)
        train = rng.integers(0, 256, size=(20, 32), dtype=np.uint8)
        matches = match_descriptors(train.copy(), train, cv2.NORM_HAMMING)
        np.testing.assert_array_equal(matches[:, 0], matches[:, 1])
        assert len(matches) == 20

    def test_empty_inputs(self):
        empty = np.zeros((0, 8), dtype=np.float32)
        some = np.ones((3, 8), dtype=np.float32)
        assert match_descriptors(empty, some, cv2.NORM_L2).shape == (0, 2)
        assert match_descriptors(some, some[:1], cv2.NORM_L2).shape == (0, 2)
