"""Feature-based localization: map view retrieval and 2D-3D matching."""

import logging
from collections.abc import Sequence

import cv2
import numpy as np

from ..calibration import CameraIntrinsics
from ..geometry import Pose3
from .features import (
    ImageFeatures,
    create_describer,
    descriptor_norm,
    extract_features,
    match_descriptors,
)
from .parameters import LocalizationParameters
from .resection import MIN_RESECTION_POINTS, verify_matches
from .rig import localize_rig_with
from .sfm_map import MapData, MapView
from .types import Correspondences, RigLocalization

logger = logging.getLogger(__name__)


class FeatureLocalizer:
    """Localizes rigs by matching query features against map views.

    Every map view is scored by the number of ratio-test matches with the
    query image; the best ``num_results`` views are geometrically verified
    and their matches to landmark-observing features become 2D-3D
    correspondences.
    """

    def __init__(self, map_data: MapData):
        self.map_data = map_data
        self._describers: dict[tuple[str, int], cv2.Feature2D] = {}

    def is_initialized(self) -> bool:
        return bool(self.map_data.landmarks) and any(
            view.features for view in self.map_data.views
        )

    def _describer(self, describer_type: str, max_features: int) -> cv2.Feature2D:
        key = (describer_type, max_features)
        if key not in self._describers:
            self._describers[key] = create_describer(describer_type, max_features)
        return self._describers[key]

    def extract(
        self, image: np.ndarray, parameters: LocalizationParameters
    ) -> dict[str, ImageFeatures]:
        """Extract query features for every configured describer type."""
        return {
            desc_type: extract_features(
                image,
                self._describer(desc_type, parameters.max_features),
                parameters.max_features,
            )
            for desc_type in parameters.describer_types
        }

    def _rank_views(
        self,
        query: dict[str, ImageFeatures],
        parameters: LocalizationParameters,
    ) -> list[tuple[MapView, dict[str, np.ndarray]]]:
        scored = []
        for view in self.map_data.views:
            view_matches = {}
            for desc_type, features in query.items():
                view_features = view.features.get(desc_type)
                if view_features is None or len(features) == 0:
                    continue
                matches = match_descriptors(
                    features.descriptors,
                    view_features.features.descriptors,
                    descriptor_norm(desc_type),
                    parameters.ratio_threshold,
                )
                if len(matches) > 0:
                    view_matches[desc_type] = matches
            score = sum(len(m) for m in view_matches.values())
            if score > 0:
                scored.append((score, view.view_id, view, view_matches))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [(view, matches) for _, _, view, matches in scored[: parameters.num_results]]

    def find_correspondences(
        self,
        image: np.ndarray,
        parameters: LocalizationParameters,
        intrinsics: CameraIntrinsics,
    ) -> Correspondences:
        """Collect 2D-3D correspondences for one query image.

        Args:
            image: Grayscale query image.
            parameters: Localization parameters.
            intrinsics: Query camera intrinsics.

        Returns:
            Correspondences, possibly empty.
        """
        query = self.extract(image, parameters)
        candidates = self._rank_views(query, parameters)

        # (describer type, query feature index) -> landmark id
        pooled: dict[tuple[str, int], int] = {}
        matched_views: list[int] = []

        for view, view_matches in candidates:
            view_corr: dict[tuple[str, int], int] = {}
            for desc_type, matches in view_matches.items():
                view_features = view.features[desc_type]
                points_query = query[desc_type].keypoints[matches[:, 0]]
                points_train = view_features.features.keypoints[matches[:, 1]]
                mask = verify_matches(
                    points_query,
                    points_train,
                    parameters.matching_estimator,
                    parameters.matching_error,
                    intrinsics,
                )
                for query_idx, train_idx in matches[mask]:
                    landmark_id = int(view_features.landmark_ids[train_idx])
                    if landmark_id >= 0:
                        view_corr[(desc_type, int(query_idx))] = landmark_id

            logger.debug(
                "Map view %d: %d verified 2D-3D matches", view.view_id, len(view_corr)
            )
            if len(view_corr) < MIN_RESECTION_POINTS:
                continue

            if parameters.algorithm == "first_best":
                pooled = view_corr
                matched_views = [view.view_id]
                break

            for key, landmark_id in view_corr.items():
                pooled.setdefault(key, landmark_id)
            matched_views.append(view.view_id)
            if parameters.max_results > 0 and len(matched_views) >= parameters.max_results:
                break

        if not pooled:
            return Correspondences.empty()

        keys = sorted(pooled)
        points2d = np.array(
            [query[desc_type].keypoints[idx] for desc_type, idx in keys], dtype=np.float64
        ).reshape(-1, 2)
        landmark_ids = np.array([pooled[key] for key in keys], dtype=np.int64)
        return Correspondences(
            points2d=points2d,
            points3d=self.map_data.landmark_points(landmark_ids),
            landmark_ids=landmark_ids,
            matched_views=matched_views,
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
