"""Synthetic scenes for localization engine tests."""

import json

import numpy as np
import pytest

from rigloc.localization.features import ImageFeatures
from rigloc.localization.sfm_map import MapData, MapView, ViewFeatures


def points_in_front(pose, count, rng, depth=(4.0, 8.0)):
    """World points that project inside a 640x480, f=500 camera at ``pose``."""
    z = rng.uniform(*depth, count)
    x = rng.uniform(-0.55, 0.55, count) * z
    y = rng.uniform(-0.4, 0.4, count) * z
    return pose.inverse().apply(np.column_stack([x, y, z]))


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def in_front():
    return points_in_front


@pytest.fixture
def landmark_scene(rng, make_pose, project_points, intrinsics):
    """100 landmarks with SIFT-like descriptors, two map views and a query.

    Map view 0 observes landmarks 0-69, view 1 observes 40-99. The query
    camera sees all of them.
    """
    query_pose = make_pose(4.0, [0.05, -0.02, 0.0])
    landmarks = points_in_front(query_pose, 100, rng, depth=(5.0, 9.0))
    descriptors = rng.normal(size=(100, 128)).astype(np.float32)

    views = []
    view_poses = [make_pose(-6.0, [-0.6, 0.1, 0.3]), make_pose(9.0, [0.7, -0.1, -0.2])]
    for view_id, (pose, ids) in enumerate(
        zip(view_poses, [np.arange(0, 70), np.arange(40, 100)])
    ):
        keypoints = project_points(landmarks[ids], pose, intrinsics).astype(np.float32)
        # Shuffle so feature indices differ from landmark ids
        order = rng.permutation(len(ids))
        features = ImageFeatures(keypoints=keypoints[order], descriptors=descriptors[ids][order])
        views.append(
            MapView(
                view_id=view_id,
                path=f"view{view_id}.png",
                features={"sift": ViewFeatures(features, ids[order].astype(np.int64))},
            )
        )

    query = ImageFeatures(
        keypoints=project_points(landmarks, query_pose, intrinsics).astype(np.float32),
        descriptors=descriptors + rng.normal(scale=0.01, size=descriptors.shape).astype(
            np.float32
        ),
    )
    map_data = MapData(landmarks={i: landmarks[i] for i in range(100)}, views=views)
    return {"map": map_data, "query": query, "query_pose": query_pose}


@pytest.fixture
def map_files(tmp_path, landmark_scene):
    """The landmark scene written as a map JSON plus per-view feature files."""
    map_data = landmark_scene["map"]
    data = {
        "landmarks": [{"id": i, "X": x.tolist()} for i, x in map_data.landmarks.items()],
        "views": [],
        "markers": [
            {"id": 3, "corners": [[0, 0, 5], [1, 0, 5], [1, 1, 5], [0, 1, 5]]},
        ],
    }
    for view in map_data.views:
        view_features = view.features["sift"]
        observations = [
            [int(lid), idx] for idx, lid in enumerate(view_features.landmark_ids)
        ]
        data["views"].append(
            {"id": view.view_id, "path": view.path, "observations": {"sift": observations}}
        )
        np.savez(
            tmp_path / f"{view.view_id}.sift.npz",
            keypoints=view_features.features.keypoints,
            descriptors=view_features.features.descriptors,
        )
    path = tmp_path / "map.json"
    path.write_text(json.dumps(data))
    return path
