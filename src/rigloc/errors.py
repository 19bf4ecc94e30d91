"""Exception hierarchy for rig localization.

Fatal conditions are raised as exceptions and stop the run. A frame that
simply fails to localize is not an error: it is recorded as a pose-absent
result and exported as a gap.
"""


class RigLocError(Exception):
    """Base class for all rigloc errors."""


class ConfigurationError(RigLocError, ValueError):
    """Invalid configuration detected before any frame is processed.

    Covers mismatched camera/intrinsics counts, invalid estimator and
    threshold combinations, malformed calibration files and invalid
    YAML configs.
    """


class UnsupportedEstimatorError(ConfigurationError):
    """Robust estimator kind that the localizer cannot use.

    Attributes:
        estimator: The rejected estimator name.
    """

    def __init__(self, estimator: object, supported: list[str]):
        self.estimator = estimator
        super().__init__(
            f"Unsupported robust estimator {estimator!r}. "
            f"Only {' and '.join(supported)} are supported."
        )


class ThresholdTooSmallError(ConfigurationError):
    """Fixed-threshold estimator configured with a (near) zero threshold.

    Attributes:
        estimator: Estimator name.
        threshold: The rejected threshold value.
        minimum: Threshold must be strictly greater than this value.
    """

    def __init__(self, estimator: str, threshold: float, minimum: float):
        self.estimator = estimator
        self.threshold = threshold
        self.minimum = minimum
        super().__init__(
            f"Error threshold {threshold!r} is too small for the {estimator} "
            f"estimator (must be > {minimum:g}). Only acransac accepts 0 "
            "(automatic threshold)."
        )


class InitializationError(RigLocError):
    """A collaborator (localizer, camera feed) failed to initialize."""


class FeedDesyncError(RigLocError):
    """Camera feeds ran out of frames at different times.

    Attributes:
        camera_index: Index of the camera whose state disagrees with camera 0.
        frame_index: Index of the synchronized frame set being read.
    """

    def __init__(self, camera_index: int, frame_index: int, exhausted: bool):
        self.camera_index = camera_index
        self.frame_index = frame_index
        self.exhausted = exhausted
        if exhausted:
            detail = "has no image while camera 0 does"
        else:
            detail = "still has images while camera 0 reached the end of its stream"
        super().__init__(
            f"Feeds out of sync at frame {frame_index}: camera {camera_index} {detail}"
        )


class MissingIntrinsicsError(RigLocError):
    """A camera delivered an image without internal calibration.

    Attributes:
        camera_index: Offending camera.
        frame_index: Frame set being read.
        image_id: Identifier of the uncalibrated image.
    """

    def __init__(self, camera_index: int, frame_index: int, image_id: str):
        self.camera_index = camera_index
        self.frame_index = frame_index
        self.image_id = image_id
        super().__init__(
            "Only internally calibrated cameras are supported: camera "
            f"{camera_index} has no intrinsics for image {image_id} "
            f"(frame {frame_index})"
        )


class FeedReadError(RigLocError):
    """A camera feed failed to decode its next image.

    Attributes:
        camera_index: Offending camera.
        frame_index: Frame set being read.
    """

    def __init__(self, camera_index: int, frame_index: int, reason: str):
        self.camera_index = camera_index
        self.frame_index = frame_index
        super().__init__(
            f"Camera {camera_index} failed to read frame {frame_index}: {reason}"
        )
