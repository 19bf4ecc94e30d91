"""Protocol interface for rig localization engines."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import numpy as np

from ..calibration import CameraIntrinsics
from ..geometry import Pose3
from .parameters import LocalizationParameters
from .types import RigLocalization


@runtime_checkable
class Localizer(Protocol):
    """Protocol for engines that localize a camera rig against a map.

    The pipeline only relies on this interface. The concrete engine is
    selected once at startup from the configured describer types and is
    never swapped during a run.
    """

    def is_initialized(self) -> bool:
        """Whether the map was loaded and the engine can localize."""
        ...

    def localize_rig(
        self,
        images: Sequence[np.ndarray],
        parameters: LocalizationParameters,
        intrinsics: Sequence[CameraIntrinsics],
        subposes: Sequence[Pose3],
    ) -> RigLocalization:
        """Localize the rig from one synchronized set of images.

        Args:
            images: Grayscale images (H, W) uint8, camera 0 first.
            parameters: Localization parameters (read-only).
            intrinsics: Per-camera intrinsics, camera order.
            subposes: N - 1 subposes (camera i + 1 relative to camera 0).

        Returns:
            RigLocalization with the rig pose (if found) and one result
            per camera. Failing to localize is reported through
            ``is_localized``, not by raising.
        """
        ...
