"""Robust geometric verification and camera resection."""

import logging
import math
from dataclasses import dataclass

import cv2
import numpy as np

from ..calibration import CameraIntrinsics
from ..estimators import RobustEstimator
from ..geometry import Pose3

logger = logging.getLogger(__name__)

MIN_RESECTION_POINTS = 6
MIN_VERIFICATION_MATCHES = 8
MIN_REFINE_INTRINSICS_POINTS = 20
RANSAC_CONFIDENCE = 0.999
RANSAC_MAX_ITERATIONS = 10000

# Adaptive (acransac) thresholds: the loose initial fit uses a fraction of
# the image diagonal, the final threshold is 3 robust sigmas of the
# initial inlier residuals, never below MIN_ADAPTIVE_THRESHOLD pixels.
ADAPTIVE_INITIAL_THRESHOLD_RATIO = 0.01
MIN_ADAPTIVE_THRESHOLD = 0.5
MAD_TO_SIGMA = 1.4826


@dataclass
class ResectionResult:
    """Robust resection of one camera.

    Attributes:
        pose: Estimated camera pose.
        inliers: Indices of inlier correspondences.
        threshold: Inlier threshold used (pixels).
        rmse: RMS reprojection error of the inliers (pixels).
    """

    pose: Pose3
    inliers: np.ndarray
    threshold: float
    rmse: float


def initial_threshold(intrinsics: CameraIntrinsics) -> float:
    """Loose inlier threshold used to seed adaptive estimation."""
    diagonal = math.hypot(intrinsics.width, intrinsics.height)
    return max(ADAPTIVE_INITIAL_THRESHOLD_RATIO * diagonal, 2 * MIN_ADAPTIVE_THRESHOLD)


def adaptive_threshold(residuals: np.ndarray, upper_bound: float = math.inf) -> float:
    """Inlier threshold estimated from a residual distribution.

    Args:
        residuals: Residuals (pixels) of a preliminary inlier set.
        upper_bound: The threshold never exceeds this value.

    Returns:
        Threshold in pixels.
    """
    residuals = residuals[np.isfinite(residuals)]
    if len(residuals) == 0:
        return min(MIN_ADAPTIVE_THRESHOLD, upper_bound)
    sigma = MAD_TO_SIGMA * float(np.median(residuals))
    return min(max(3.0 * sigma, MIN_ADAPTIVE_THRESHOLD), upper_bound)


def verify_matches(
    points_query: np.ndarray,
    points_train: np.ndarray,
    estimator: RobustEstimator,
    threshold: float,
    intrinsics: CameraIntrinsics,
) -> np.ndarray:
    """Geometrically verify putative matches with a fundamental matrix.

    ACRANSAC maps to OpenCV MAGSAC (threshold-adaptive, bounded by
    ``threshold``); LORANSAC maps to OpenCV LO-RANSAC with the fixed
    threshold.

    Args:
        points_query: Query image points, shape (N, 2).
        points_train: Map view points, shape (N, 2).
        estimator: Matching estimator.
        threshold: Matching threshold in pixels (inf = automatic).
        intrinsics: Query intrinsics (for the automatic threshold scale).

    Returns:
        Boolean inlier mask, shape (N,).
    """
    n = len(points_query)
    if n < MIN_VERIFICATION_MATCHES:
        return np.zeros(n, dtype=bool)

    if estimator is RobustEstimator.LORANSAC:
        method = cv2.USAC_DEFAULT
        max_threshold = threshold
    else:
        method = cv2.USAC_MAGSAC
        max_threshold = min(threshold, initial_threshold(intrinsics))

    F, mask = cv2.findFundamentalMat(
        np.asarray(points_query, dtype=np.float64).reshape(-1, 2),
        np.asarray(points_train, dtype=np.float64).reshape(-1, 2),
        method,
        float(max_threshold),
        RANSAC_CONFIDENCE,
        RANSAC_MAX_ITERATIONS,
    )
    if F is None or mask is None:
        return np.zeros(n, dtype=bool)
    return mask.ravel().astype(bool)


def reprojection_errors(
    points2d: np.ndarray,
    points3d: np.ndarray,
    pose: Pose3,
    intrinsics: CameraIntrinsics,
) -> np.ndarray:
    """Reprojection error (pixels) per correspondence.

    Points behind the camera get an infinite error.
    """
    if len(points3d) == 0:
        return np.zeros(0)
    rvec, tvec = pose.to_rvec_tvec()
    projected, _ = cv2.projectPoints(
        np.asarray(points3d, dtype=np.float64).reshape(-1, 1, 3),
        rvec,
        tvec,
        intrinsics.K,
        intrinsics.dist_coeffs,
    )
    errors = np.linalg.norm(projected.reshape(-1, 2) - points2d, axis=1)
    depth = pose.apply(points3d)[:, 2]
    errors[depth <= 0] = np.inf
    return errors


def _refine(
    points2d: np.ndarray,
    points3d: np.ndarray,
    intrinsics: CameraIntrinsics,
    pose: Pose3,
) -> Pose3:
    rvec, tvec = pose.to_rvec_tvec()
    rvec, tvec = cv2.solvePnPRefineLM(
        np.asarray(points3d, dtype=np.float64).reshape(-1, 1, 3),
        np.asarray(points2d, dtype=np.float64).reshape(-1, 1, 2),
        intrinsics.K,
        intrinsics.dist_coeffs,
        rvec.reshape(3, 1).copy(),
        tvec.reshape(3, 1).copy(),
    )
    return Pose3.from_rvec_tvec(rvec, tvec)


def resect_camera(
    points2d: np.ndarray,
    points3d: np.ndarray,
    intrinsics: CameraIntrinsics,
    estimator: RobustEstimator,
    threshold: float,
) -> ResectionResult | None:
    """Estimate a camera pose from 2D-3D correspondences.

    LORANSAC runs RANSAC PnP with the fixed threshold, then refines the pose
    on the inliers (local optimization). ACRANSAC starts from a loose fit,
    derives the threshold from the residual distribution (bounded by
    ``threshold``) and refines on the resulting inliers.

    Args:
        points2d: Image points, shape (N, 2).
        points3d: World points, shape (N, 3).
        intrinsics: Camera intrinsics.
        estimator: Resection estimator (ACRANSAC or LORANSAC).
        threshold: Reprojection threshold in pixels (inf = automatic).

    Returns:
        ResectionResult, or None if no pose with enough inliers was found.
    """
    points2d = np.asarray(points2d, dtype=np.float64).reshape(-1, 2)
    points3d = np.asarray(points3d, dtype=np.float64).reshape(-1, 3)
    if len(points2d) < MIN_RESECTION_POINTS:
        logger.debug("Resection skipped: %d correspondences", len(points2d))
        return None

    if estimator is RobustEstimator.LORANSAC:
        ransac_threshold = threshold
    else:
        ransac_threshold = min(threshold, initial_threshold(intrinsics))

    ok, rvec, tvec, inliers = cv2.solvePnPRansac(
        points3d.reshape(-1, 1, 3),
        points2d.reshape(-1, 1, 2),
        intrinsics.K,
        intrinsics.dist_coeffs,
        iterationsCount=RANSAC_MAX_ITERATIONS,
        reprojectionError=float(ransac_threshold),
        confidence=RANSAC_CONFIDENCE,
        flags=cv2.SOLVEPNP_EPNP,
    )
    if not ok or inliers is None or len(inliers) < MIN_RESECTION_POINTS:
        logger.debug("RANSAC resection failed on %d correspondences", len(points2d))
        return None

    inliers = inliers.ravel()
    pose = _refine(
        points2d[inliers], points3d[inliers], intrinsics, Pose3.from_rvec_tvec(rvec, tvec)
    )
    errors = reprojection_errors(points2d, points3d, pose, intrinsics)

    if estimator is RobustEstimator.LORANSAC:
        used_threshold = threshold
    else:
        used_threshold = adaptive_threshold(errors[inliers], upper_bound=threshold)

    inliers = np.flatnonzero(errors < used_threshold)
    if len(inliers) < MIN_RESECTION_POINTS:
        return None

    pose = _refine(points2d[inliers], points3d[inliers], intrinsics, pose)
    errors = reprojection_errors(points2d, points3d, pose, intrinsics)
    inliers = np.flatnonzero(errors < used_threshold)
    if len(inliers) < MIN_RESECTION_POINTS:
        return None

    rmse = float(np.sqrt(np.mean(errors[inliers] ** 2)))
    return ResectionResult(pose=pose, inliers=inliers, threshold=used_threshold, rmse=rmse)


def refine_intrinsics(
    points2d: np.ndarray,
    points3d: np.ndarray,
    intrinsics: CameraIntrinsics,
) -> tuple[CameraIntrinsics, Pose3] | None:
    """Refine focal length and radial distortion on inlier correspondences.

    The principal point is kept fixed.

    Args:
        points2d: Inlier image points, shape (N, 2).
        points3d: Inlier world points, shape (N, 3).
        intrinsics: Initial intrinsics.

    Returns:
        Tuple of (refined intrinsics, re-estimated pose), or None when there
        are too few points or OpenCV fails to converge.
    """
    if len(points2d) < MIN_REFINE_INTRINSICS_POINTS:
        logger.debug(
            "Intrinsics refinement skipped: %d points (need %d)",
            len(points2d),
            MIN_REFINE_INTRINSICS_POINTS,
        )
        return None

    flags = (
        cv2.CALIB_USE_INTRINSIC_GUESS
        | cv2.CALIB_FIX_PRINCIPAL_POINT
        | cv2.CALIB_FIX_ASPECT_RATIO
        | cv2.CALIB_ZERO_TANGENT_DIST
    )
    try:
        _, K, dist, rvecs, tvecs = cv2.calibrateCamera(
            [np.asarray(points3d, dtype=np.float32).reshape(-1, 3)],
            [np.asarray(points2d, dtype=np.float32).reshape(-1, 2)],
            intrinsics.image_size,
            intrinsics.K.copy(),
            intrinsics.dist_coeffs.copy(),
            flags=flags,
        )
    except cv2.error as e:
        logger.warning("Intrinsics refinement failed: %s", e)
        return None

    refined = intrinsics.with_opencv_params(K, dist)
    return refined, Pose3.from_rvec_tvec(rvecs[0], tvecs[0])
