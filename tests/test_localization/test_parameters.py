"""Tests for building localization parameters from a config."""

import math

import pytest

from rigloc.config import (
    DescriberPreset,
    ResectionConfig,
    RetrievalConfig,
    RigLocalizationConfig,
)
from rigloc.errors import ThresholdTooSmallError, UnsupportedEstimatorError
from rigloc.estimators import RobustEstimator
from rigloc.localization.parameters import build_localization_parameters


def test_defaults():
    params = build_localization_parameters(RigLocalizationConfig())
    assert params.describer_types == ("sift",)
    assert params.resection_estimator is RobustEstimator.ACRANSAC
    assert params.resection_error == 4.0
    assert params.matching_error == 4.0
    assert params.angular_threshold == pytest.approx(math.radians(0.1))
    assert params.max_features == 5000


def test_automatic_thresholds():
    config = RigLocalizationConfig(
        resection=ResectionConfig(reprojection_error=0.0),
        retrieval=RetrievalConfig(matching_error=0.0),
    )
    params = build_localization_parameters(config)
    assert params.resection_error == math.inf
    assert params.matching_error == math.inf


def test_loransac_zero_threshold():
    config = RigLocalizationConfig(
        resection=ResectionConfig(estimator="loransac", reprojection_error=0.0)
    )
    with pytest.raises(ThresholdTooSmallError):
        build_localization_parameters(config)


def test_unsupported_matching_estimator():
    config = RigLocalizationConfig(retrieval=RetrievalConfig(matching_estimator="lsmeds"))
    with pytest.raises(UnsupportedEstimatorError):
        build_localization_parameters(config)


def test_parameters_are_frozen():
    params = build_localization_parameters(
        RigLocalizationConfig(preset=DescriberPreset.ULTRA)
    )
    assert params.max_features == 0
    with pytest.raises(AttributeError):
        params.resection_error = 1.0
