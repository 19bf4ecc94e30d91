"""Feature extraction and descriptor matching with OpenCV."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ImageFeatures:
    """Keypoints and descriptors of one image for one describer type.

    Attributes:
        keypoints: Pixel coordinates (u, v), shape (N, 2), float32.
        descriptors: Descriptors, shape (N, D). float32 for SIFT, uint8
            for binary describers.
    """

    keypoints: np.ndarray
    descriptors: np.ndarray

    def __len__(self) -> int:
        return len(self.keypoints)


def create_describer(describer_type: str, max_features: int = 0) -> cv2.Feature2D:
    """Create an OpenCV feature describer.

    Args:
        describer_type: "sift", "akaze" or "orb".
        max_features: Maximum number of features to keep (0 = unbounded).

    Returns:
        OpenCV detector/descriptor.

    Raises:
        ValueError: If describer_type is not recognized.
        ConfigurationError: If the installed OpenCV lacks the describer.
    """
    if describer_type == "sift":
        return cv2.SIFT_create(nfeatures=max_features)
    if describer_type == "akaze":
        if not hasattr(cv2, "AKAZE_create"):
            raise ConfigurationError(
                f"The akaze describer is not available in OpenCV {cv2.__version__}"
            )
        return cv2.AKAZE_create()
    if describer_type == "orb":
        return cv2.ORB_create(nfeatures=max_features if max_features > 0 else 100000)
    raise ValueError(
        f"Unknown describer type: {describer_type!r}. "
        "Valid types: 'sift', 'akaze', 'orb'"
    )


def descriptor_norm(describer_type: str) -> int:
    """OpenCV norm used to compare descriptors of a describer type."""
    return cv2.NORM_L2 if describer_type == "sift" else cv2.NORM_HAMMING


def extract_features(
    image: np.ndarray,
    describer: cv2.Feature2D,
    max_features: int = 0,
) -> ImageFeatures:
    """Detect and describe features on a grayscale image.

    Args:
        image: Grayscale image (H, W) uint8.
        describer: OpenCV describer from :func:`create_describer`.
        max_features: Keep the strongest N responses (0 = keep all).

    Returns:
        Extracted features (possibly empty).
    """
    keypoints, descriptors = describer.detectAndCompute(image, None)
    if descriptors is None or not keypoints:
        return ImageFeatures(
            keypoints=np.zeros((0, 2), dtype=np.float32),
            descriptors=np.zeros((0, describer.descriptorSize()), dtype=np.float32),
        )

    if max_features > 0 and len(keypoints) > max_features:
        order = np.argsort([-kp.response for kp in keypoints])[:max_features]
        keypoints = [keypoints[i] for i in order]
        descriptors = descriptors[order]

    points = np.array([kp.pt for kp in keypoints], dtype=np.float32).reshape(-1, 2)
    return ImageFeatures(keypoints=points, descriptors=descriptors)


def match_descriptors(
    query: np.ndarray,
    train: np.ndarray,
    norm: int,
    ratio_threshold: float = 0.8,
) -> np.ndarray:
    """Match descriptors with a nearest-neighbor ratio test.

    Args:
        query: Query descriptors, shape (N, D).
        train: Train descriptors, shape (M, D).
        norm: OpenCV norm type.
        ratio_threshold: Keep a match only when the best distance is below
            ``ratio_threshold`` times the second best.

    Returns:
        Index pairs (query_idx, train_idx), shape (K, 2), int64. Each train
        feature appears at most once.
    """
    if len(query) < 1 or len(train) < 2:
        return np.zeros((0, 2), dtype=np.int64)

    if norm == cv2.NORM_L2:
        query = np.asarray(query, dtype=np.float32)
        train = np.asarray(train, dtype=np.float32)

    matcher = cv2.BFMatcher(norm)
    knn = matcher.knnMatch(query, train, k=2)

    best_by_train: dict[int, tuple[float, int]] = {}
    for pair in knn:
        if len(pair) < 2:
            continue
        best, second = pair
        if best.distance >= ratio_threshold * second.distance:
            continue
        previous = best_by_train.get(best.trainIdx)
        if previous is None or best.distance < previous[0]:
            best_by_train[best.trainIdx] = (best.distance, best.queryIdx)

    if not best_by_train:
        return np.zeros((0, 2), dtype=np.int64)

    pairs = sorted((q, t) for t, (_, q) in best_by_train.items())
    return np.array(pairs, dtype=np.int64)
