"""Configuration management for rig localization."""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigurationError
from .estimators import RobustEstimator

logger = logging.getLogger(__name__)

# Valid values for enum fields
FEATURE_DESCRIBER_TYPES = ["sift", "akaze", "orb"]
MARKER_DESCRIBER_TYPES = ["aruco"]
VALID_DESCRIBER_TYPES = FEATURE_DESCRIBER_TYPES + MARKER_DESCRIBER_TYPES


class DescriberPreset(str, Enum):
    """Feature extraction presets for query images.

    Each preset bounds the number of features extracted per image:
    - LOW / MEDIUM: fast, fewer features
    - NORMAL: default
    - HIGH / ULTRA: slow, more features (ULTRA is unbounded)
    """

    LOW = "low"
    MEDIUM = "medium"
    NORMAL = "normal"
    HIGH = "high"
    ULTRA = "ultra"


PRESET_MAX_FEATURES = {
    DescriberPreset.LOW: 1000,
    DescriberPreset.MEDIUM: 2500,
    DescriberPreset.NORMAL: 5000,
    DescriberPreset.HIGH: 10000,
    DescriberPreset.ULTRA: 0,
}


class ResectionConfig(BaseModel):
    """Configuration for camera resection and rig pose estimation.

    Attributes:
        estimator: Robust estimator used for resection.
        reprojection_error: Maximum reprojection error (pixels). 0 lets
            acransac select the threshold automatically.
        refine_intrinsics: Refine camera intrinsics on each localized image.
        use_localize_rig_naive: Localize each camera separately and derive
            the rig pose from the best camera instead of refining the rig
            pose jointly.
        angular_threshold: Maximum angle (degrees) between a feature bearing
            vector and the direction of its 3D point in joint rig refinement.
    """

    model_config = ConfigDict(extra="allow")

    estimator: RobustEstimator = RobustEstimator.ACRANSAC
    reprojection_error: float = 4.0
    refine_intrinsics: bool = False
    use_localize_rig_naive: bool = False
    angular_threshold: float = 0.1

    @field_validator("reprojection_error")
    @classmethod
    def validate_reprojection_error(cls, v: float) -> float:
        """Validate that reprojection_error is non-negative."""
        if v < 0:
            raise ValueError(f"reprojection_error must be >= 0, got {v}")
        return v

    @field_validator("angular_threshold")
    @classmethod
    def validate_angular_threshold(cls, v: float) -> float:
        """Validate that angular_threshold is positive."""
        if v <= 0:
            raise ValueError(f"angular_threshold must be > 0, got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "ResectionConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in ResectionConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class RetrievalConfig(BaseModel):
    """Configuration for map view retrieval and matching (feature localizer).

    Attributes:
        algorithm: "first_best" stops at the first map view that yields a
            usable set of correspondences; "all_results" pools
            correspondences from several views.
        num_results: Number of map views retrieved per query image.
        max_results: For "all_results", stop once this many views matched.
            0 means no limit.
        matching_estimator: Robust estimator for geometric verification.
        matching_error: Maximum matching error (pixels) for geometric
            verification. 0 lets acransac select the threshold automatically.
        ratio_threshold: Nearest-neighbor ratio test threshold.
    """

    model_config = ConfigDict(extra="allow")

    algorithm: Literal["first_best", "all_results"] = "all_results"
    num_results: int = 4
    max_results: int = 10
    matching_estimator: RobustEstimator = RobustEstimator.ACRANSAC
    matching_error: float = 4.0
    ratio_threshold: float = 0.8

    @field_validator("num_results")
    @classmethod
    def validate_num_results(cls, v: int) -> int:
        """Validate that num_results is positive."""
        if v < 1:
            raise ValueError(f"num_results must be >= 1, got {v}")
        return v

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, v: int) -> int:
        """Validate that max_results is non-negative."""
        if v < 0:
            raise ValueError(f"max_results must be >= 0, got {v}")
        return v

    @field_validator("matching_error")
    @classmethod
    def validate_matching_error(cls, v: float) -> float:
        """Validate that matching_error is non-negative."""
        if v < 0:
            raise ValueError(f"matching_error must be >= 0, got {v}")
        return v

    @field_validator("ratio_threshold")
    @classmethod
    def validate_ratio_threshold(cls, v: float) -> float:
        """Validate that ratio_threshold is in (0, 1]."""
        if not 0 < v <= 1:
            raise ValueError(f"ratio_threshold must be in (0, 1], got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "RetrievalConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in RetrievalConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class MarkerConfig(BaseModel):
    """Configuration for the marker localizer.

    Attributes:
        dictionary: OpenCV ArUco predefined dictionary name.
    """

    model_config = ConfigDict(extra="allow")

    dictionary: str = "DICT_4X4_50"

    @field_validator("dictionary")
    @classmethod
    def validate_dictionary(cls, v: str) -> str:
        """Validate the dictionary name shape (existence is checked by OpenCV)."""
        if not v.startswith("DICT_"):
            raise ValueError(f"dictionary must be an ArUco DICT_* name, got {v!r}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "MarkerConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in MarkerConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class OutputConfig(BaseModel):
    """Configuration for outputs and progress reporting.

    Attributes:
        trajectory_path: Rig trajectory JSON file. Per-camera tracks are
            written next to it. None disables export.
        quiet: Suppress progress output.
    """

    model_config = ConfigDict(extra="allow")

    trajectory_path: str | None = "trackedcameras.json"
    quiet: bool = False

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "OutputConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in OutputConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class RigLocalizationConfig(BaseModel):
    """Top-level configuration for rig localization.

    Attributes:
        sfm_data: Path to the map (landmarks, views, markers) JSON file.
        media_paths: Per-camera media: video file, image directory, image
            list text file or single image. Order defines camera indices.
        camera_intrinsics: Per-camera intrinsics calibration files, in the
            same order as media_paths.
        calibration: Rig calibration file (subposes). Optional for a single
            camera.
        descriptor_path: Folder containing per-view feature files. Defaults
            to the folder of sfm_data.
        describer_types: Describer types used for matching.
        preset: Feature extraction preset for query images.
        resection: Resection configuration.
        retrieval: Retrieval and matching configuration.
        markers: Marker localizer configuration.
        output: Output configuration.
    """

    model_config = ConfigDict(extra="allow")

    # Required fields (no sensible defaults)
    sfm_data: str = ""
    media_paths: list[str] = Field(default_factory=list)
    camera_intrinsics: list[str] = Field(default_factory=list)

    # Optional with defaults
    calibration: str | None = None
    descriptor_path: str | None = None
    describer_types: list[str] = Field(default_factory=lambda: ["sift"])
    preset: DescriberPreset = DescriberPreset.NORMAL

    # Sub-configs
    resection: ResectionConfig = Field(default_factory=ResectionConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    markers: MarkerConfig = Field(default_factory=MarkerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("describer_types")
    @classmethod
    def validate_describer_types(cls, v: list[str]) -> list[str]:
        """Validate and normalize describer type names."""
        if not v:
            raise ValueError("describer_types must not be empty")
        normalized = []
        for name in v:
            name = name.strip().lower()
            if name not in VALID_DESCRIBER_TYPES:
                raise ValueError(
                    f"Invalid describer type: {name!r}. "
                    f"Valid types: {VALID_DESCRIBER_TYPES}"
                )
            if name not in normalized:
                normalized.append(name)
        return normalized

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "RigLocalizationConfig":
        """Warn about unknown top-level keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in RigLocalizationConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @property
    def num_cameras(self) -> int:
        return len(self.media_paths)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RigLocalizationConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration with defaults filled in.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigurationError: If the file is not valid YAML or validation
                fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from None

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping, "
                f"got {type(data).__name__}"
            )

        cls._log_default_sections(data)

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            formatted_errors = format_validation_errors(e)
            raise ConfigurationError(
                f"Configuration validation failed:\n{formatted_errors}"
            ) from None

        return config

    @staticmethod
    def _log_default_sections(data: dict[str, Any]) -> None:
        """Log INFO messages about sections using defaults."""
        for section in ("resection", "retrieval", "markers", "output"):
            if section not in data:
                logger.info("Using default: %s (all defaults)", section)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        path_parts = []
        for part in err["loc"]:
            if isinstance(part, int) and path_parts:
                path_parts[-1] = f"{path_parts[-1]}[{part}]"
            else:
                path_parts.append(str(part))

        path = ".".join(path_parts)
        lines.append(f"  {path}: {err['msg']}")

    return "\n".join(lines)
