"""Immutable localization parameters built once from a validated config."""

import logging
import math
from dataclasses import dataclass

from ..config import PRESET_MAX_FEATURES, DescriberPreset, RigLocalizationConfig
from ..estimators import RobustEstimator, validate_estimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalizationParameters:
    """Parameters passed unchanged to every per-frame localization call.

    Attributes:
        describer_types: Describer types used for matching.
        preset: Feature extraction preset for query images.
        resection_estimator: Robust estimator for resection.
        resection_error: Resection threshold in pixels (inf = automatic).
        matching_estimator: Robust estimator for geometric verification.
        matching_error: Matching threshold in pixels (inf = automatic).
        refine_intrinsics: Refine intrinsics on localized images.
        use_localize_rig_naive: Use naive (per camera) rig localization.
        angular_threshold: Angular threshold in radians for joint rig
            refinement.
        algorithm: Retrieval algorithm ("first_best" or "all_results").
        num_results: Number of map views retrieved per query.
        max_results: Maximum number of matched views (0 = no limit).
        ratio_threshold: Nearest-neighbor ratio test threshold.
        marker_dictionary: ArUco dictionary name for the marker localizer.
    """

    describer_types: tuple[str, ...] = ("sift",)
    preset: DescriberPreset = DescriberPreset.NORMAL
    resection_estimator: RobustEstimator = RobustEstimator.ACRANSAC
    resection_error: float = math.inf
    matching_estimator: RobustEstimator = RobustEstimator.ACRANSAC
    matching_error: float = math.inf
    refine_intrinsics: bool = False
    use_localize_rig_naive: bool = False
    angular_threshold: float = math.radians(0.1)
    algorithm: str = "all_results"
    num_results: int = 4
    max_results: int = 10
    ratio_threshold: float = 0.8
    marker_dictionary: str = "DICT_4X4_50"

    @property
    def max_features(self) -> int:
        """Feature budget for query images (0 = unbounded)."""
        return PRESET_MAX_FEATURES[self.preset]


def build_localization_parameters(
    config: RigLocalizationConfig,
) -> LocalizationParameters:
    """Validate estimator thresholds and assemble the parameter bundle.

    Args:
        config: Full localization configuration.

    Returns:
        Frozen parameters for the localizer.

    Raises:
        UnsupportedEstimatorError: If an estimator cannot be used.
        ThresholdTooSmallError: If a LORANSAC threshold is (near) zero.
    """
    matching_error = validate_estimator(
        config.retrieval.matching_estimator, config.retrieval.matching_error
    )
    resection_error = validate_estimator(
        config.resection.estimator, config.resection.reprojection_error
    )

    params = LocalizationParameters(
        describer_types=tuple(config.describer_types),
        preset=config.preset,
        resection_estimator=RobustEstimator(config.resection.estimator),
        resection_error=resection_error,
        matching_estimator=RobustEstimator(config.retrieval.matching_estimator),
        matching_error=matching_error,
        refine_intrinsics=config.resection.refine_intrinsics,
        use_localize_rig_naive=config.resection.use_localize_rig_naive,
        angular_threshold=math.radians(config.resection.angular_threshold),
        algorithm=config.retrieval.algorithm,
        num_results=config.retrieval.num_results,
        max_results=config.retrieval.max_results,
        ratio_threshold=config.retrieval.ratio_threshold,
        marker_dictionary=config.markers.dictionary,
    )
    logger.debug("Localization parameters: %s", params)
    return params
