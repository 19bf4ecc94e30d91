"""Shared pytest fixtures for rigloc tests."""

import numpy as np
import pytest

from rigloc.calibration import CameraIntrinsics
from rigloc.geometry import Pose3
from rigloc.io import FeedItem, FeedSet
from rigloc.localization.types import LocalizationResult, RigLocalization


class ListFeed:
    """In-memory camera feed over a list of items."""

    def __init__(self, items):
        self.items = list(items)
        self.position = 0
        self.reads = 0
        self.closed = False

    def read(self):
        self.reads += 1
        if self.position >= len(self.items):
            return None
        return self.items[self.position]

    def advance(self):
        self.position += 1

    def close(self):
        self.closed = True


class ScriptedLocalizer:
    """Localizer replaying a fixed sequence of success/failure outcomes.

    Frame k is localized iff ``outcomes[k]`` is true; the rig pose of a
    localized frame is a translation of k along x.
    """

    def __init__(self, outcomes=None, initialized=True):
        self.outcomes = list(outcomes) if outcomes is not None else None
        self.initialized = initialized
        self.calls = []

    def is_initialized(self):
        return self.initialized

    def localize_rig(self, images, parameters, intrinsics, subposes):
        frame = len(self.calls)
        self.calls.append(
            {"images": images, "parameters": parameters, "intrinsics": intrinsics,
             "subposes": list(subposes)}
        )
        ok = True if self.outcomes is None else bool(self.outcomes[frame])
        rig_pose = Pose3(np.eye(3), [float(frame), 0.0, 0.0]) if ok else None
        results = []
        for i, intr in enumerate(intrinsics):
            if ok:
                pose = rig_pose if i == 0 else subposes[i - 1] * rig_pose
            else:
                pose = None
            results.append(
                LocalizationResult(
                    image_id=f"cam{i:02d}",
                    is_valid=ok,
                    pose=pose,
                    intrinsics=intr,
                    num_correspondences=50 if ok else 3,
                    num_inliers=40 if ok else 0,
                )
            )
        return RigLocalization(is_localized=ok, rig_pose=rig_pose, results=tuple(results))


@pytest.fixture
def intrinsics():
    """640x480 pinhole camera with a 500 px focal length."""
    return CameraIntrinsics(width=640, height=480, focal=500.0, ppx=320.0, ppy=240.0)


@pytest.fixture
def make_items(intrinsics):
    """Factory for lists of feed items of one camera."""

    def _make(count, camera=0, with_intrinsics=True):
        return [
            FeedItem(
                image=np.full((48, 64), 10 * k % 256, dtype=np.uint8),
                intrinsics=intrinsics if with_intrinsics else None,
                image_id=f"cam{camera}/frame_{k:04d}.png",
            )
            for k in range(count)
        ]

    return _make


@pytest.fixture
def make_feed_set(make_items):
    """Factory building a FeedSet from per-camera frame counts."""

    def _make(counts):
        feeds = [ListFeed(make_items(count, camera=i)) for i, count in enumerate(counts)]
        return FeedSet(feeds), feeds

    return _make


@pytest.fixture
def rig_subposes():
    """Two subposes: camera 1 shifted along x, camera 2 rotated 90 deg about y."""
    rot_y = np.array([[0.0, 0.0, -1.0], [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])
    return [
        Pose3(np.eye(3), [0.2, 0.0, 0.0]),
        Pose3(rot_y, [0.0, 0.0, 0.1]),
    ]


@pytest.fixture
def scene_points():
    """Random world points in a box in front of the origin."""
    rng = np.random.default_rng(7)
    return np.column_stack(
        [
            rng.uniform(-2.0, 2.0, 200),
            rng.uniform(-1.5, 1.5, 200),
            rng.uniform(4.0, 8.0, 200),
        ]
    )


def look_pose(yaw_deg: float, center) -> Pose3:
    """Camera pose rotated about the y axis, centered at ``center``."""
    a = np.radians(yaw_deg)
    R = np.array(
        [[np.cos(a), 0.0, -np.sin(a)], [0.0, 1.0, 0.0], [np.sin(a), 0.0, np.cos(a)]]
    )
    return Pose3(R, np.asarray(center, dtype=np.float64))


def project(points3d, pose: Pose3, intrinsics: CameraIntrinsics) -> np.ndarray:
    """Pinhole projection (no distortion) of world points."""
    cam = pose.apply(points3d)
    uv = cam[:, :2] / cam[:, 2:3]
    return uv * intrinsics.focal + np.array([intrinsics.ppx, intrinsics.ppy])


@pytest.fixture
def make_pose():
    return look_pose


@pytest.fixture
def project_points():
    return project


@pytest.fixture
def scripted_localizer():
    """Factory for localizers replaying success/failure outcomes."""
    return ScriptedLocalizer


@pytest.fixture
def list_feed():
    """Factory for in-memory camera feeds."""
    return ListFeed
