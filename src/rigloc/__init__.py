"""Synchronous localization of a multi-camera rig against a 3D map."""

from .calibration import (
    CameraIntrinsics,
    load_intrinsics,
    load_rig_calibration,
    save_intrinsics,
    save_rig_calibration,
)
from .config import (
    MarkerConfig,
    OutputConfig,
    ResectionConfig,
    RetrievalConfig,
    RigLocalizationConfig,
)
from .errors import (
    ConfigurationError,
    FeedDesyncError,
    FeedReadError,
    InitializationError,
    MissingIntrinsicsError,
    RigLocError,
    ThresholdTooSmallError,
    UnsupportedEstimatorError,
)
from .estimators import RobustEstimator, validate_estimator
from .export import JsonTrajectoryExporter, NullExporter, TrajectoryExporter
from .geometry import Pose3
from .io import FeedSet, open_feed
from .localization import (
    LocalizationParameters,
    Localizer,
    build_localization_parameters,
    create_localizer,
)
from .pipeline import (
    PipelineContext,
    ResultLog,
    RigPipeline,
    RunSummary,
    TimingStats,
    build_pipeline_context,
    run_pipeline,
)

__version__ = "0.1.0"

__all__ = [
    "RigLocalizationConfig",
    "ResectionConfig",
    "RetrievalConfig",
    "MarkerConfig",
    "OutputConfig",
    "RigLocError",
    "ConfigurationError",
    "UnsupportedEstimatorError",
    "ThresholdTooSmallError",
    "InitializationError",
    "FeedDesyncError",
    "FeedReadError",
    "MissingIntrinsicsError",
    "RobustEstimator",
    "validate_estimator",
    "Pose3",
    "CameraIntrinsics",
    "load_intrinsics",
    "save_intrinsics",
    "load_rig_calibration",
    "save_rig_calibration",
    "FeedSet",
    "open_feed",
    "Localizer",
    "LocalizationParameters",
    "build_localization_parameters",
    "create_localizer",
    "TrajectoryExporter",
    "JsonTrajectoryExporter",
    "NullExporter",
    "PipelineContext",
    "RigPipeline",
    "ResultLog",
    "RunSummary",
    "TimingStats",
    "build_pipeline_context",
    "run_pipeline",
]
