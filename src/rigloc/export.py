"""Trajectory exporters: one keyframe or gap per frame, rig and per camera."""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .calibration import CameraIntrinsics
from .geometry import Pose3

logger = logging.getLogger(__name__)


@runtime_checkable
class TrajectoryExporter(Protocol):
    """Receives exactly one keyframe or gap per frame index, in order."""

    def add_keyframe(
        self,
        frame_index: int,
        rig_pose: Pose3,
        camera_poses: Sequence[Pose3],
        intrinsics: Sequence[CameraIntrinsics],
        media_dirs: Sequence[str],
    ) -> None:
        """Record a localized frame for the rig track and every camera track."""
        ...

    def jump_keyframe(self, frame_index: int) -> None:
        """Record a gap (frame not localized) on every track."""
        ...

    def close(self) -> None:
        """Flush and release the exporter."""
        ...


class NullExporter:
    """Exporter that discards everything."""

    def add_keyframe(self, frame_index, rig_pose, camera_poses, intrinsics, media_dirs):
        pass

    def jump_keyframe(self, frame_index):
        pass

    def close(self):
        pass


class JsonTrajectoryExporter:
    """Writes the rig track and one track per camera as JSON files.

    The rig track goes to ``output_path``; camera i goes to
    ``<stem>.camNN<suffix>`` next to it. Files are written on close. A gap
    is stored as an entry whose ``pose`` is null.

    Args:
        output_path: Path of the rig track file.
        num_cameras: Number of rig cameras.
    """

    def __init__(self, output_path: str | Path, num_cameras: int):
        if num_cameras < 1:
            raise ValueError(f"num_cameras must be >= 1, got {num_cameras}")
        self.output_path = Path(output_path)
        self.num_cameras = num_cameras
        self.rig_track: list[dict[str, Any]] = []
        self.camera_tracks: list[list[dict[str, Any]]] = [[] for _ in range(num_cameras)]
        self._next_index = 0
        self._closed = False

    def camera_track_path(self, camera_index: int) -> Path:
        suffix = self.output_path.suffix or ".json"
        return self.output_path.with_name(
            f"{self.output_path.stem}.cam{camera_index:02d}{suffix}"
        )

    def _check_index(self, frame_index: int) -> None:
        if self._closed:
            raise ValueError("Exporter is closed")
        if frame_index != self._next_index:
            raise ValueError(
                f"Frame {frame_index} exported out of order (expected {self._next_index})"
            )
        self._next_index += 1

    def add_keyframe(
        self,
        frame_index: int,
        rig_pose: Pose3,
        camera_poses: Sequence[Pose3],
        intrinsics: Sequence[CameraIntrinsics],
        media_dirs: Sequence[str],
    ) -> None:
        if not len(camera_poses) == len(intrinsics) == len(media_dirs) == self.num_cameras:
            raise ValueError(
                f"Expected {self.num_cameras} camera poses, intrinsics and media "
                f"folders, got {len(camera_poses)}, {len(intrinsics)}, {len(media_dirs)}"
            )
        self._check_index(frame_index)
        self.rig_track.append({"frame": frame_index, "pose": rig_pose.to_dict()})
        for track, pose, intr, media_dir in zip(
            self.camera_tracks, camera_poses, intrinsics, media_dirs, strict=True
        ):
            track.append(
                {
                    "frame": frame_index,
                    "pose": pose.to_dict(),
                    "intrinsics": intr.to_dict(),
                    "media_dir": media_dir,
                }
            )

    def jump_keyframe(self, frame_index: int) -> None:
        self._check_index(frame_index)
        self.rig_track.append({"frame": frame_index, "pose": None})
        for track in self.camera_tracks:
            track.append({"frame": frame_index, "pose": None})

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.output_path, "w") as f:
            json.dump(
                {"num_cameras": self.num_cameras, "frames": self.rig_track}, f, indent=2
            )
        for cam_idx, track in enumerate(self.camera_tracks):
            with open(self.camera_track_path(cam_idx), "w") as f:
                json.dump({"camera": cam_idx, "frames": track}, f, indent=2)

        logger.info(
            "Trajectory saved to %s (%d frames, %d camera tracks)",
            self.output_path,
            len(self.rig_track),
            self.num_cameras,
        )


def create_exporter(output_path: str | Path | None, num_cameras: int) -> TrajectoryExporter:
    """JSON exporter for ``output_path``, or a no-op exporter when it is None."""
    if output_path is None:
        return NullExporter()
    return JsonTrajectoryExporter(output_path, num_cameras)
