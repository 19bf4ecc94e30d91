"""Loading of the localization map: landmarks, map views and markers."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .features import ImageFeatures

logger = logging.getLogger(__name__)


@dataclass
class ViewFeatures:
    """Features of one map view for one describer type.

    Attributes:
        features: Keypoints and descriptors of the view.
        landmark_ids: Landmark observed by each feature, -1 when none,
            shape (N,), int64.
    """

    features: ImageFeatures
    landmark_ids: np.ndarray

    @property
    def num_observations(self) -> int:
        return int(np.count_nonzero(self.landmark_ids >= 0))


@dataclass
class MapView:
    """One reconstructed view of the map.

    Attributes:
        view_id: View identifier.
        path: Source image path (informational).
        features: Per describer type features of the view.
    """

    view_id: int
    path: str
    features: dict[str, ViewFeatures] = field(default_factory=dict)


@dataclass
class MapData:
    """Everything a localizer needs from the map.

    Attributes:
        landmarks: Landmark id to world point (3,) float64.
        views: Map views with their features.
        markers: Marker id to its four world corners (4, 3) float64.
    """

    landmarks: dict[int, np.ndarray]
    views: list[MapView]
    markers: dict[int, np.ndarray] = field(default_factory=dict)

    def landmark_points(self, landmark_ids: np.ndarray) -> np.ndarray:
        """World points for a sequence of landmark ids, shape (N, 3)."""
        if len(landmark_ids) == 0:
            return np.zeros((0, 3))
        return np.stack([self.landmarks[int(i)] for i in landmark_ids])


def load_map(
    map_path: str | Path,
    descriptor_folder: str | Path | None,
    describer_types: list[str],
) -> MapData:
    """Load a map JSON file and the per-view features it refers to.

    The JSON file holds ``landmarks`` (``id`` and ``X``), ``views`` (``id``,
    ``path`` and per describer type ``observations`` as
    ``[landmark_id, feature_index]`` pairs) and optional ``markers``
    (``id`` and four ``corners``). Features of view V for describer D are
    read from ``<descriptor_folder>/<V>.<D>.npz`` (arrays ``keypoints`` and
    ``descriptors``). Views without a feature file are skipped with a
    warning.

    Args:
        map_path: Path to the map JSON file.
        descriptor_folder: Folder with per-view feature files. Defaults to
            the map file's folder.
        describer_types: Describer types whose features should be loaded.

    Returns:
        Loaded map.

    Raises:
        FileNotFoundError: If the map file does not exist.
        ValueError: If the map file is malformed.
    """
    map_path = Path(map_path)
    folder = Path(descriptor_folder) if descriptor_folder else map_path.parent

    with open(map_path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in map file {map_path}: {e}") from None

    if not isinstance(data, dict):
        raise ValueError(f"Map file {map_path} must contain a JSON object")

    landmarks = {}
    for entry in data.get("landmarks", []):
        point = np.asarray(entry["X"], dtype=np.float64)
        if point.shape != (3,):
            raise ValueError(f"Landmark {entry.get('id')} must have 3 coordinates")
        landmarks[int(entry["id"])] = point

    markers = {}
    for entry in data.get("markers", []):
        corners = np.asarray(entry["corners"], dtype=np.float64)
        if corners.shape != (4, 3):
            raise ValueError(
                f"Marker {entry.get('id')} must have 4 corners of 3 coordinates, "
                f"got shape {corners.shape}"
            )
        markers[int(entry["id"])] = corners

    views = []
    for entry in data.get("views", []):
        view = MapView(view_id=int(entry["id"]), path=str(entry.get("path", "")))
        observations = entry.get("observations", {})
        for desc_type in describer_types:
            feat_path = folder / f"{view.view_id}.{desc_type}.npz"
            if not feat_path.exists():
                logger.warning(
                    "No %s features for view %d (%s)", desc_type, view.view_id, feat_path
                )
                continue
            with np.load(feat_path) as npz:
                features = ImageFeatures(
                    keypoints=np.asarray(npz["keypoints"], dtype=np.float32).reshape(-1, 2),
                    descriptors=np.asarray(npz["descriptors"]),
                )
            landmark_ids = np.full(len(features), -1, dtype=np.int64)
            for landmark_id, feature_idx in observations.get(desc_type, []):
                if int(landmark_id) not in landmarks:
                    raise ValueError(
                        f"View {view.view_id} observes unknown landmark {landmark_id}"
                    )
                if not 0 <= int(feature_idx) < len(features):
                    raise ValueError(
                        f"View {view.view_id} references feature {feature_idx} "
                        f"out of {len(features)} ({desc_type})"
                    )
                landmark_ids[int(feature_idx)] = int(landmark_id)
            view.features[desc_type] = ViewFeatures(features, landmark_ids)
        if view.features:
            views.append(view)

    logger.info(
        "Loaded map %s: %d landmarks, %d views with features, %d markers",
        map_path,
        len(landmarks),
        len(views),
        len(markers),
    )
    return MapData(landmarks=landmarks, views=views, markers=markers)
