"""Data types exchanged between the localizers and the pipeline."""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ..calibration import CameraIntrinsics
from ..geometry import Pose3


@dataclass
class Correspondences:
    """2D-3D correspondences collected for one query image.

    Attributes:
        points2d: Image points (u, v), shape (N, 2), float64.
        points3d: World points, shape (N, 3), float64.
        landmark_ids: Landmark id per correspondence, shape (N,), int64.
        matched_views: Map view ids that contributed correspondences.
    """

    points2d: np.ndarray
    points3d: np.ndarray
    landmark_ids: np.ndarray
    matched_views: list[int] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "Correspondences":
        return cls(
            points2d=np.zeros((0, 2)),
            points3d=np.zeros((0, 3)),
            landmark_ids=np.zeros(0, dtype=np.int64),
        )

    def __len__(self) -> int:
        return len(self.points2d)


@dataclass(frozen=True)
class LocalizationResult:
    """Outcome of localizing one camera image.

    Attributes:
        image_id: Identifier of the query image.
        is_valid: Whether the camera was resected on its own.
        pose: Camera pose. After a successful rig localization this is the
            pose implied by the rig pose and the camera subpose, even for
            cameras that failed on their own.
        intrinsics: Intrinsics used (refined if refinement was requested).
        num_correspondences: Number of 2D-3D correspondences found.
        num_inliers: Number of inlier correspondences after resection.
        matched_views: Map views that contributed correspondences.
        rmse: RMS reprojection error of the inliers (pixels), if resected.
        threshold: Inlier threshold actually used (pixels), if resected.
    """

    image_id: str
    is_valid: bool
    pose: Pose3 | None
    intrinsics: CameraIntrinsics
    num_correspondences: int = 0
    num_inliers: int = 0
    matched_views: tuple[int, ...] = ()
    rmse: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_id": self.image_id,
            "is_valid": self.is_valid,
            "pose": self.pose.to_dict() if self.pose is not None else None,
            "intrinsics": self.intrinsics.to_dict(),
            "num_correspondences": self.num_correspondences,
            "num_inliers": self.num_inliers,
            "matched_views": list(self.matched_views),
            "rmse": self.rmse,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class RigLocalization:
    """Outcome of localizing a whole rig for one synchronized frame set.

    Attributes:
        is_localized: Whether a rig pose was found.
        rig_pose: Pose of the reference camera 0, or None.
        results: Per-camera results in camera order.
    """

    is_localized: bool
    rig_pose: Pose3 | None
    results: tuple[LocalizationResult, ...]
