"""Tests for configuration system."""

import logging

import pytest
import yaml
from pydantic import ValidationError

from rigloc.config import (
    DescriberPreset,
    MarkerConfig,
    OutputConfig,
    ResectionConfig,
    RetrievalConfig,
    RigLocalizationConfig,
)
from rigloc.errors import ConfigurationError
from rigloc.estimators import RobustEstimator


class TestResectionConfig:
    """Tests for ResectionConfig."""

    def test_defaults(self):
        """Test default values."""
        config = ResectionConfig()
        assert config.estimator is RobustEstimator.ACRANSAC
        assert config.reprojection_error == 4.0
        assert config.refine_intrinsics is False
        assert config.use_localize_rig_naive is False
        assert config.angular_threshold == 0.1

    def test_negative_reprojection_error(self):
        with pytest.raises(ValidationError, match="reprojection_error"):
            ResectionConfig(reprojection_error=-1.0)

    def test_non_positive_angular_threshold(self):
        with pytest.raises(ValidationError, match="angular_threshold"):
            ResectionConfig(angular_threshold=0.0)

    def test_unsupported_but_known_estimator_parses(self):
        """Known estimator names parse; support is checked later."""
        assert ResectionConfig(estimator="ransac").estimator is RobustEstimator.RANSAC


class TestRetrievalConfig:
    """Tests for RetrievalConfig."""

    def test_defaults(self):
        """Test default values."""
        config = RetrievalConfig()
        assert config.algorithm == "all_results"
        assert config.num_results == 4
        assert config.max_results == 10
        assert config.matching_estimator is RobustEstimator.ACRANSAC
        assert config.matching_error == 4.0
        assert config.ratio_threshold == 0.8

    def test_invalid_algorithm(self):
        with pytest.raises(ValidationError):
            RetrievalConfig(algorithm="best_of_all")

    def test_num_results_positive(self):
        with pytest.raises(ValidationError, match="num_results"):
            RetrievalConfig(num_results=0)

    def test_max_results_zero_allowed(self):
        assert RetrievalConfig(max_results=0).max_results == 0

    def test_ratio_threshold_range(self):
        with pytest.raises(ValidationError, match="ratio_threshold"):
            RetrievalConfig(ratio_threshold=1.5)


class TestMarkerAndOutputConfig:
    """Tests for MarkerConfig and OutputConfig."""

    def test_marker_defaults(self):
        assert MarkerConfig().dictionary == "DICT_4X4_50"

    def test_marker_dictionary_shape(self):
        with pytest.raises(ValidationError):
            MarkerConfig(dictionary="4X4_50")

    def test_output_defaults(self):
        config = OutputConfig()
        assert config.trajectory_path == "trackedcameras.json"
        assert config.quiet is False


class TestRigLocalizationConfig:
    """Tests for RigLocalizationConfig."""

    def test_defaults(self):
        config = RigLocalizationConfig()
        assert config.describer_types == ["sift"]
        assert config.preset is DescriberPreset.NORMAL
        assert config.calibration is None
        assert config.num_cameras == 0

    def test_describer_types_normalized(self):
        config = RigLocalizationConfig(describer_types=["SIFT", " akaze", "sift"])
        assert config.describer_types == ["sift", "akaze"]

    def test_describer_types_invalid(self):
        with pytest.raises(ValidationError, match="Invalid describer type"):
            RigLocalizationConfig(describer_types=["surf"])

    def test_describer_types_empty(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            RigLocalizationConfig(describer_types=[])

    def test_extra_fields_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            RigLocalizationConfig(unknown_key=1)
        assert "unknown_key" in caplog.text


class TestYamlRoundtrip:
    """Tests for YAML loading and saving."""

    def test_roundtrip(self, tmp_path):
        config = RigLocalizationConfig(
            sfm_data="map.json",
            media_paths=["cam0.mp4", "cam1.mp4"],
            camera_intrinsics=["cam0.txt", "cam1.txt"],
            calibration="rig.txt",
            describer_types=["akaze"],
            preset="high",
            resection=ResectionConfig(estimator="loransac", reprojection_error=2.0),
            retrieval=RetrievalConfig(algorithm="first_best"),
        )
        path = tmp_path / "config.yaml"
        config.to_yaml(path)

        loaded = RigLocalizationConfig.from_yaml(path)
        assert loaded == config
        assert loaded.num_cameras == 2
        assert loaded.resection.estimator is RobustEstimator.LORANSAC

    def test_partial_yaml_uses_defaults(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"sfm_data": "map.json", "media_paths": ["a.mp4"]}))
        with caplog.at_level(logging.INFO):
            config = RigLocalizationConfig.from_yaml(path)
        assert config.retrieval.num_results == 4
        assert "Using default: resection" in caplog.text

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert RigLocalizationConfig.from_yaml(path).sfm_data == ""

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("sfm_data: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            RigLocalizationConfig.from_yaml(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            RigLocalizationConfig.from_yaml(path)

    def test_validation_errors_formatted(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {"resection": {"reprojection_error": -2}, "describer_types": ["x"]}
            )
        )
        with pytest.raises(ConfigurationError) as exc_info:
            RigLocalizationConfig.from_yaml(path)
        message = str(exc_info.value)
        assert "resection.reprojection_error" in message
        assert "describer_types" in message

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RigLocalizationConfig.from_yaml(tmp_path / "missing.yaml")
