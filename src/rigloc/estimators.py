"""Robust estimator kinds and threshold validation."""

import logging
import math
from enum import Enum

from .errors import ConfigurationError, ThresholdTooSmallError, UnsupportedEstimatorError

logger = logging.getLogger(__name__)

# A fixed-threshold inlier test needs a strictly positive radius.
MIN_FIXED_THRESHOLD = 1e-6


class RobustEstimator(str, Enum):
    """Robust estimation frameworks known by name.

    Only ACRANSAC and LORANSAC can drive localization; the other names are
    accepted by the parser so that the error message can be explicit.
    """

    ACRANSAC = "acransac"
    RANSAC = "ransac"
    LSMEDS = "lsmeds"
    LORANSAC = "loransac"
    MAXCONSENSUS = "maxconsensus"


SUPPORTED_ESTIMATORS = (RobustEstimator.ACRANSAC, RobustEstimator.LORANSAC)


def validate_estimator(estimator: RobustEstimator | str, threshold: float) -> float:
    """Check that a threshold is usable with the given robust estimator.

    For ACRANSAC a threshold of 0 means "estimate it during the robust
    process" and is returned as +inf. LORANSAC needs a strictly positive
    threshold.

    Args:
        estimator: Estimator kind (enum member or its string value).
        threshold: Reprojection or matching error threshold in pixels.

    Returns:
        The normalized threshold.

    Raises:
        UnsupportedEstimatorError: If the estimator is neither ACRANSAC nor
            LORANSAC.
        ThresholdTooSmallError: If LORANSAC is given a threshold <= 1e-6.
        ConfigurationError: If the threshold is negative or NaN.
    """
    supported = [e.value for e in SUPPORTED_ESTIMATORS]
    try:
        kind = RobustEstimator(estimator)
    except ValueError:
        raise UnsupportedEstimatorError(estimator, supported) from None

    if kind not in SUPPORTED_ESTIMATORS:
        raise UnsupportedEstimatorError(kind.value, supported)

    if not threshold >= 0:
        raise ConfigurationError(
            f"Error threshold must be a non-negative number, got {threshold!r}"
        )

    if kind is RobustEstimator.ACRANSAC:
        if threshold == 0:
            logger.debug("acransac threshold 0: using automatic threshold")
            return math.inf
        return threshold

    if threshold <= MIN_FIXED_THRESHOLD:
        raise ThresholdTooSmallError(kind.value, threshold, MIN_FIXED_THRESHOLD)
    return threshold
