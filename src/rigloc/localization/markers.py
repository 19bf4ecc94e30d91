"""Marker-based localization with OpenCV ArUco."""

import logging
from collections.abc import Sequence

import cv2
import numpy as np

from ..calibration import CameraIntrinsics
from ..errors import ConfigurationError
from ..geometry import Pose3
from .parameters import LocalizationParameters
from .rig import localize_rig_with
from .types import Correspondences, RigLocalization

logger = logging.getLogger(__name__)


def aruco_dictionary(name: str) -> cv2.aruco.Dictionary:
    """Look up a predefined ArUco dictionary by name (e.g. ``"DICT_4X4_50"``).

    Raises:
        ConfigurationError: If OpenCV has no such dictionary.
    """
    dictionary_id = getattr(cv2.aruco, name, None) if name.startswith("DICT_") else None
    if not isinstance(dictionary_id, int):
        raise ConfigurationError(f"Unknown ArUco dictionary: {name!r}")
    return cv2.aruco.getPredefinedDictionary(dictionary_id)


class MarkerLocalizer:
    """Localizes rigs from ArUco markers whose corners are known in the map.

    Args:
        markers: Marker id to its four world corners (4, 3), in ArUco
            corner order (top-left, top-right, bottom-right, bottom-left).
    """

    def __init__(self, markers: dict[int, np.ndarray]):
        self.markers = markers
        self._detectors: dict[str, cv2.aruco.ArucoDetector] = {}

    def is_initialized(self) -> bool:
        return bool(self.markers)

    def _detector(self, dictionary_name: str) -> cv2.aruco.ArucoDetector:
        if dictionary_name not in self._detectors:
            self._detectors[dictionary_name] = cv2.aruco.ArucoDetector(
                aruco_dictionary(dictionary_name), cv2.aruco.DetectorParameters()
            )
        return self._detectors[dictionary_name]

    def find_correspondences(
        self,
        image: np.ndarray,
        parameters: LocalizationParameters,
        intrinsics: CameraIntrinsics,
    ) -> Correspondences:
        """Four corner correspondences per detected marker known to the map."""
        corners, ids, _ = self._detector(parameters.marker_dictionary).detectMarkers(image)
        if ids is None:
            return Correspondences.empty()

        points2d, points3d, landmark_ids = [], [], []
        for marker_corners, marker_id in zip(corners, ids.ravel(), strict=True):
            world = self.markers.get(int(marker_id))
            if world is None:
                logger.debug("Detected marker %d is not in the map", marker_id)
                continue
            points2d.append(np.asarray(marker_corners, dtype=np.float64).reshape(4, 2))
            points3d.append(world)
            landmark_ids.extend([int(marker_id)] * 4)

        if not points2d:
            return Correspondences.empty()
        return Correspondences(
            points2d=np.vstack(points2d),
            points3d=np.vstack(points3d),
            landmark_ids=np.array(landmark_ids, dtype=np.int64),
        )

    def localize_rig(
        self,
        images: Sequence[np.ndarray],
        parameters: LocalizationParameters,
        intrinsics: Sequence[CameraIntrinsics],
        subposes: Sequence[Pose3],
    ) -> RigLocalization:
        return localize_rig_with(
            self.find_correspondences, images, parameters, intrinsics, subposes
        )
