"""Loaders for per-camera intrinsics and rig calibration (subposes)."""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import numpy as np

from .errors import ConfigurationError
from .geometry import Pose3

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CameraIntrinsics:
    """Pinhole camera with three radial distortion coefficients.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        focal: Focal length in pixels (square pixels).
        ppx: Principal point x in pixels.
        ppy: Principal point y in pixels.
        k1: First radial distortion coefficient.
        k2: Second radial distortion coefficient.
        k3: Third radial distortion coefficient.
    """

    width: int
    height: int
    focal: float
    ppx: float
    ppy: float
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0

    @property
    def K(self) -> np.ndarray:
        """Intrinsic matrix, shape (3, 3), float64."""
        return np.array(
            [
                [self.focal, 0.0, self.ppx],
                [0.0, self.focal, self.ppy],
                [0.0, 0.0, 1.0],
            ]
        )

    @property
    def dist_coeffs(self) -> np.ndarray:
        """OpenCV distortion vector (k1, k2, p1, p2, k3), shape (5,)."""
        return np.array([self.k1, self.k2, 0.0, 0.0, self.k3])

    @property
    def image_size(self) -> tuple[int, int]:
        """Image dimensions as (width, height)."""
        return (self.width, self.height)

    def with_opencv_params(self, K: np.ndarray, dist: np.ndarray) -> "CameraIntrinsics":
        """Copy with focal, principal point and radial terms taken from OpenCV arrays."""
        dist = np.asarray(dist, dtype=np.float64).reshape(-1)
        k3 = float(dist[4]) if dist.size > 4 else 0.0
        return replace(
            self,
            focal=float(0.5 * (K[0, 0] + K[1, 1])),
            ppx=float(K[0, 2]),
            ppy=float(K[1, 2]),
            k1=float(dist[0]),
            k2=float(dist[1]),
            k3=k3,
        )

    @classmethod
    def from_values(cls, values: list[float]) -> "CameraIntrinsics":
        """Build from ``width height focal ppx ppy k1 k2 k3``."""
        if len(values) != 8:
            raise ValueError(
                f"Expected 8 intrinsics values (width height focal ppx ppy k1 k2 k3), "
                f"got {len(values)}"
            )
        width, height = int(values[0]), int(values[1])
        if width <= 0 or height <= 0 or values[2] <= 0:
            raise ValueError(
                f"Invalid intrinsics: image size {width}x{height}, focal {values[2]}"
            )
        return cls(width, height, *(float(v) for v in values[2:]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "focal": self.focal,
            "principal_point": [self.ppx, self.ppy],
            "distortion": [self.k1, self.k2, self.k3],
        }


def load_intrinsics(path: str | Path) -> CameraIntrinsics:
    """Load a camera intrinsics calibration file.

    The file holds eight whitespace separated numbers, conventionally laid
    out as::

        width height
        focal
        ppx ppy
        k1 k2 k3

    Args:
        path: Path to the calibration text file.

    Returns:
        Parsed intrinsics.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file content is malformed.
    """
    path = Path(path)
    with open(path) as f:
        tokens = f.read().split()
    try:
        values = [float(tok) for tok in tokens]
    except ValueError:
        raise ValueError(f"Non-numeric value in intrinsics file {path}") from None
    try:
        return CameraIntrinsics.from_values(values)
    except ValueError as e:
        raise ValueError(f"Malformed intrinsics file {path}: {e}") from None


def save_intrinsics(intrinsics: CameraIntrinsics, path: str | Path) -> None:
    """Write intrinsics in the format read by :func:`load_intrinsics`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(f"{intrinsics.width} {intrinsics.height}\n")
        f.write(f"{intrinsics.focal!r}\n")
        f.write(f"{intrinsics.ppx!r} {intrinsics.ppy!r}\n")
        f.write(f"{intrinsics.k1!r} {intrinsics.k2!r} {intrinsics.k3!r}\n")


def load_rig_calibration(path: str | Path | None, num_cameras: int) -> list[Pose3]:
    """Load the subposes of a camera rig.

    The file starts with the number of subposes S, followed by S blocks of
    a row-major 3x3 rotation and a 3-vector center. Subpose i describes
    camera i + 1 relative to the reference camera 0.

    A single-camera rig needs no calibration file; if one is given it must
    contain zero subposes.

    Args:
        path: Path to the rig calibration file, or None/"" for a single camera.
        num_cameras: Number of cameras in the rig (N >= 1).

    Returns:
        List of exactly ``num_cameras - 1`` subposes.

    Raises:
        ConfigurationError: If the file is missing, malformed, or does not
            contain exactly N - 1 subposes.
    """
    if num_cameras < 1:
        raise ConfigurationError(f"A rig needs at least one camera, got {num_cameras}")

    if not path:
        if num_cameras > 1:
            raise ConfigurationError(
                f"A rig calibration file is required for {num_cameras} cameras"
            )
        return []

    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Rig calibration file not found: {path}")

    with open(path) as f:
        tokens = f.read().split()
    if not tokens:
        raise ConfigurationError(f"Rig calibration file is empty: {path}")

    try:
        num_subposes = int(tokens[0])
        values = [float(tok) for tok in tokens[1:]]
    except ValueError:
        raise ConfigurationError(
            f"Rig calibration file {path} contains non-numeric values"
        ) from None

    if len(values) != 12 * num_subposes:
        raise ConfigurationError(
            f"Rig calibration file {path} declares {num_subposes} subposes but "
            f"holds {len(values)} values (expected {12 * num_subposes})"
        )

    subposes = []
    for i in range(num_subposes):
        block = np.array(values[12 * i : 12 * (i + 1)])
        rotation = block[:9].reshape(3, 3)
        if not np.allclose(rotation @ rotation.T, np.eye(3), atol=1e-4):
            logger.warning("Subpose %d in %s is not a proper rotation", i, path)
        subposes.append(Pose3(rotation, block[9:]))

    if len(subposes) != num_cameras - 1:
        raise ConfigurationError(
            f"Rig calibration {path} has {len(subposes)} subposes but the rig has "
            f"{num_cameras} cameras (expected {num_cameras - 1})"
        )

    logger.info("Loaded %d subposes from %s", len(subposes), path)
    return subposes


def save_rig_calibration(subposes: list[Pose3], path: str | Path) -> None:
    """Write subposes in the format read by :func:`load_rig_calibration`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(f"{len(subposes)}\n")
        for pose in subposes:
            for row in pose.rotation:
                f.write(" ".join(repr(float(v)) for v in row) + "\n")
            f.write(" ".join(repr(float(v)) for v in pose.center) + "\n")
