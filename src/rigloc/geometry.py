"""Rigid pose representation shared by the rig, the localizers and the exporter."""

from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np


@dataclass(frozen=True, eq=False)
class Pose3:
    """Rigid transform stored as a rotation and a center.

    A world point X maps to ``R @ (X - C)``. For a camera pose, R is the
    world-to-camera rotation and C the camera center in world coordinates.

    Attributes:
        rotation: Rotation matrix, shape (3, 3), float64.
        center: Center, shape (3,), float64.
    """

    rotation: np.ndarray
    center: np.ndarray

    def __post_init__(self):
        rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        center = np.asarray(self.center, dtype=np.float64).reshape(3)
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "center", center)

    @classmethod
    def identity(cls) -> "Pose3":
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_rt(cls, R: np.ndarray, t: np.ndarray) -> "Pose3":
        """Build a pose from an OpenCV-style transform ``X_c = R X + t``."""
        R = np.asarray(R, dtype=np.float64).reshape(3, 3)
        t = np.asarray(t, dtype=np.float64).reshape(3)
        return cls(R, -R.T @ t)

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> "Pose3":
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls.from_rt(R, tvec)

    @property
    def translation(self) -> np.ndarray:
        """Translation t such that ``X_c = R X + t``."""
        return -self.rotation @ self.center

    def to_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        rvec, _ = cv2.Rodrigues(self.rotation)
        return rvec.reshape(3), self.translation

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Transform points of shape (N, 3) or (3,)."""
        points = np.asarray(points, dtype=np.float64)
        return (points - self.center) @ self.rotation.T

    def inverse(self) -> "Pose3":
        return Pose3(self.rotation.T, -(self.rotation @ self.center))

    def __mul__(self, other: "Pose3") -> "Pose3":
        # (self * other).apply(X) == self.apply(other.apply(X))
        return Pose3(
            self.rotation @ other.rotation,
            other.center + other.rotation.T @ self.center,
        )

    def is_close(self, other: "Pose3", atol: float = 1e-9) -> bool:
        return bool(
            np.allclose(self.rotation, other.rotation, atol=atol)
            and np.allclose(self.center, other.center, atol=atol)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rotation": self.rotation.tolist(),
            "center": self.center.tolist(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pose3":
        return cls(np.array(data["rotation"]), np.array(data["center"]))


def camera_pose_from_rig(rig_pose: Pose3, subpose: Pose3 | None) -> Pose3:
    """Pose of a rig camera given the rig (reference camera) pose.

    Args:
        rig_pose: Pose of the reference camera 0.
        subpose: Transform from the reference camera to this camera, or None
            for the reference camera itself.
    """
    if subpose is None:
        return rig_pose
    return subpose * rig_pose


def rig_pose_from_camera(camera_pose: Pose3, subpose: Pose3 | None) -> Pose3:
    """Inverse of :func:`camera_pose_from_rig`."""
    if subpose is None:
        return camera_pose
    return subpose.inverse() * camera_pose
