"""Per-camera resection and rig pose estimation.

Both localization engines share this step: they only differ in how 2D-3D
correspondences are found for a query image. Given those, every camera is
resected independently, then the rig pose is taken from the best camera
(naive) or refined jointly over all cameras' bearing vectors.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import cv2
import numpy as np
from scipy.optimize import least_squares

from ..calibration import CameraIntrinsics
from ..geometry import Pose3, camera_pose_from_rig, rig_pose_from_camera
from .parameters import LocalizationParameters
from .resection import (
    MIN_RESECTION_POINTS,
    ResectionResult,
    refine_intrinsics,
    reprojection_errors,
    resect_camera,
)
from .types import Correspondences, LocalizationResult, RigLocalization

logger = logging.getLogger(__name__)

JOINT_REFINEMENT_ROUNDS = 2

CorrespondenceFinder = Callable[
    [np.ndarray, LocalizationParameters, CameraIntrinsics], Correspondences
]


@dataclass
class CameraObservations:
    """Inputs of one camera for rig pose estimation.

    Attributes:
        correspondences: 2D-3D correspondences of the query image.
        intrinsics: Intrinsics of the camera (refined if requested).
        subpose: Transform from the reference camera, None for camera 0.
        resection: Independent resection of the camera, None if it failed.
    """

    correspondences: Correspondences
    intrinsics: CameraIntrinsics
    subpose: Pose3 | None
    resection: ResectionResult | None


def bearing_vectors(points2d: np.ndarray, intrinsics: CameraIntrinsics) -> np.ndarray:
    """Unit viewing rays (camera frame) of image points, shape (N, 3)."""
    if len(points2d) == 0:
        return np.zeros((0, 3))
    normalized = cv2.undistortPoints(
        np.asarray(points2d, dtype=np.float64).reshape(-1, 1, 2),
        intrinsics.K,
        intrinsics.dist_coeffs,
    ).reshape(-1, 2)
    rays = np.hstack([normalized, np.ones((len(normalized), 1))])
    return rays / np.linalg.norm(rays, axis=1, keepdims=True)


def angular_errors(
    rig_pose: Pose3,
    subpose: Pose3 | None,
    bearings: np.ndarray,
    points3d: np.ndarray,
) -> np.ndarray:
    """Angle (radians) between observed bearings and the rays to the points."""
    if len(points3d) == 0:
        return np.zeros(0)
    points_cam = camera_pose_from_rig(rig_pose, subpose).apply(points3d)
    norms = np.linalg.norm(points_cam, axis=1)
    norms[norms == 0] = np.finfo(np.float64).eps
    cosines = np.sum(bearings * points_cam, axis=1) / norms
    return np.arccos(np.clip(cosines, -1.0, 1.0))


def localize_rig_naive(cameras: Sequence[CameraObservations]) -> Pose3 | None:
    """Rig pose from the camera resected with the most inliers."""
    resected = [c for c in cameras if c.resection is not None]
    if not resected:
        return None
    best = max(resected, key=lambda c: len(c.resection.inliers))
    return rig_pose_from_camera(best.resection.pose, best.subpose)


def refine_rig_pose(
    initial: Pose3,
    cameras: Sequence[CameraObservations],
    angular_threshold: float,
) -> Pose3 | None:
    """Jointly refine the rig pose over the correspondences of all cameras.

    Inliers are correspondences whose bearing lies within
    ``angular_threshold`` of the ray to their world point. The rig pose
    minimizes the cross product between observed bearings and predicted
    rays over the inliers of every camera, then inliers are reselected.

    Args:
        initial: Initial rig pose.
        cameras: Observations of every camera.
        angular_threshold: Inlier threshold in radians.

    Returns:
        Refined rig pose, or None when fewer than the minimum number of
        inliers support it.
    """
    bearings = [bearing_vectors(c.correspondences.points2d, c.intrinsics) for c in cameras]
    pose = initial

    for _ in range(JOINT_REFINEMENT_ROUNDS):
        inliers = [
            angular_errors(pose, c.subpose, b, c.correspondences.points3d) < angular_threshold
            for c, b in zip(cameras, bearings, strict=True)
        ]
        total = sum(int(mask.sum()) for mask in inliers)
        if total < MIN_RESECTION_POINTS:
            logger.debug("Joint rig refinement: %d inliers, giving up", total)
            return None

        def residuals(params, inliers=inliers):
            candidate = Pose3.from_rvec_tvec(params[:3], params[3:])
            parts = []
            for camera, b, mask in zip(cameras, bearings, inliers, strict=True):
                if not mask.any():
                    continue
                points_cam = camera_pose_from_rig(candidate, camera.subpose).apply(
                    camera.correspondences.points3d[mask]
                )
                rays = points_cam / np.linalg.norm(points_cam, axis=1, keepdims=True)
                parts.append(np.cross(b[mask], rays).ravel())
            return np.concatenate(parts)

        rvec, tvec = pose.to_rvec_tvec()
        solution = least_squares(
            residuals,
            np.concatenate([rvec, tvec]),
            loss="huber",
            f_scale=float(np.sin(angular_threshold)),
        )
        pose = Pose3.from_rvec_tvec(solution.x[:3], solution.x[3:])

    total = sum(
        int(np.count_nonzero(
            angular_errors(pose, c.subpose, b, c.correspondences.points3d) < angular_threshold
        ))
        for c, b in zip(cameras, bearings, strict=True)
    )
    logger.debug("Joint rig refinement: %d inliers", total)
    return pose if total >= MIN_RESECTION_POINTS else None


def estimate_rig_pose(
    cameras: Sequence[CameraObservations],
    parameters: LocalizationParameters,
) -> Pose3 | None:
    """Rig pose from per-camera resections, naive or jointly refined.

    Joint refinement is seeded with the naive estimate and falls back to it
    when the refinement is not supported by enough inliers.
    """
    seed = localize_rig_naive(cameras)
    if seed is None or parameters.use_localize_rig_naive or len(cameras) == 1:
        return seed

    refined = refine_rig_pose(seed, cameras, parameters.angular_threshold)
    if refined is None:
        logger.debug("Joint rig refinement failed, keeping the naive estimate")
        return seed
    return refined


def _resect(
    correspondences: Correspondences,
    intrinsics: CameraIntrinsics,
    parameters: LocalizationParameters,
) -> tuple[ResectionResult | None, CameraIntrinsics]:
    resection = resect_camera(
        correspondences.points2d,
        correspondences.points3d,
        intrinsics,
        parameters.resection_estimator,
        parameters.resection_error,
    )
    if resection is None or not parameters.refine_intrinsics:
        return resection, intrinsics

    inliers = resection.inliers
    refined = refine_intrinsics(
        correspondences.points2d[inliers], correspondences.points3d[inliers], intrinsics
    )
    if refined is None:
        return resection, intrinsics

    refined_intrinsics, pose = refined
    errors = reprojection_errors(
        correspondences.points2d, correspondences.points3d, pose, refined_intrinsics
    )
    new_inliers = np.flatnonzero(errors < resection.threshold)
    if len(new_inliers) < MIN_RESECTION_POINTS:
        return resection, intrinsics
    rmse = float(np.sqrt(np.mean(errors[new_inliers] ** 2)))
    return (
        ResectionResult(pose=pose, inliers=new_inliers, threshold=resection.threshold, rmse=rmse),
        refined_intrinsics,
    )


def localize_rig_with(
    find_correspondences: CorrespondenceFinder,
    images: Sequence[np.ndarray],
    parameters: LocalizationParameters,
    intrinsics: Sequence[CameraIntrinsics],
    subposes: Sequence[Pose3],
    image_ids: Sequence[str] | None = None,
) -> RigLocalization:
    """Localize a rig given a per-image correspondence finder.

    Args:
        find_correspondences: Returns the 2D-3D correspondences of one image.
        images: Grayscale images, camera 0 first.
        parameters: Localization parameters.
        intrinsics: Per-camera intrinsics.
        subposes: N - 1 subposes.
        image_ids: Identifiers reported in the per-camera results.

    Returns:
        RigLocalization. When the rig is localized every camera's pose is
        the one implied by the rig pose.
    """
    if len(subposes) != len(images) - 1:
        raise ValueError(
            f"Expected {len(images) - 1} subposes for {len(images)} cameras, got {len(subposes)}"
        )
    if image_ids is None:
        image_ids = [f"cam{i:02d}" for i in range(len(images))]

    cameras = []
    for i, (image, intr) in enumerate(zip(images, intrinsics, strict=True)):
        correspondences = find_correspondences(image, parameters, intr)
        resection, used_intrinsics = _resect(correspondences, intr, parameters)
        logger.debug(
            "Camera %d: %d correspondences, %s",
            i,
            len(correspondences),
            f"{len(resection.inliers)} inliers" if resection else "not resected",
        )
        cameras.append(
            CameraObservations(
                correspondences=correspondences,
                intrinsics=used_intrinsics,
                subpose=subposes[i - 1] if i > 0 else None,
                resection=resection,
            )
        )

    rig_pose = estimate_rig_pose(cameras, parameters)

    results = []
    for i, camera in enumerate(cameras):
        if rig_pose is not None:
            pose = camera_pose_from_rig(rig_pose, camera.subpose)
        elif camera.resection is not None:
            pose = camera.resection.pose
        else:
            pose = None
        resection = camera.resection
        results.append(
            LocalizationResult(
                image_id=image_ids[i],
                is_valid=resection is not None,
                pose=pose,
                intrinsics=camera.intrinsics,
                num_correspondences=len(camera.correspondences),
                num_inliers=len(resection.inliers) if resection else 0,
                matched_views=tuple(camera.correspondences.matched_views),
                rmse=resection.rmse if resection else None,
                threshold=resection.threshold if resection else None,
            )
        )

    return RigLocalization(
        is_localized=rig_pose is not None, rig_pose=rig_pose, results=tuple(results)
    )
