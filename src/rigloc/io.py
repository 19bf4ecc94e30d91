"""Camera feeds: video files, image sequences and synchronized feed sets."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import cv2
import numpy as np

from .calibration import CameraIntrinsics, load_intrinsics
from .errors import (
    FeedDesyncError,
    FeedReadError,
    InitializationError,
    MissingIntrinsicsError,
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".pgm"}
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mkv", ".mov", ".mpg", ".mpeg"}
LIST_EXTENSIONS = {".txt"}


@dataclass
class FeedItem:
    """One image delivered by a camera feed.

    Attributes:
        image: Grayscale image (H, W) uint8.
        intrinsics: Camera intrinsics, or None when unknown.
        image_id: Identifier of the image (file path or video frame tag).
    """

    image: np.ndarray
    intrinsics: CameraIntrinsics | None
    image_id: str

    @property
    def has_intrinsics(self) -> bool:
        return self.intrinsics is not None


@dataclass
class FrameSet:
    """One synchronized set of images, one per rig camera.

    Attributes:
        index: Zero-based frame index.
        images: Grayscale images in camera order.
        intrinsics: Per-camera intrinsics in camera order.
        image_ids: Per-camera image identifiers in camera order.
    """

    index: int
    images: list[np.ndarray]
    intrinsics: list[CameraIntrinsics]
    image_ids: list[str]


@runtime_checkable
class CameraFeed(Protocol):
    """Protocol for the ordered image stream of one camera.

    ``read`` returns the current item (None at end of stream) without
    moving; ``advance`` moves to the next item.
    """

    def read(self) -> FeedItem | None:
        ...

    def advance(self) -> None:
        ...

    def close(self) -> None:
        ...


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


class ImageSequenceFeed:
    """Feed over an explicit list of image files.

    Args:
        image_paths: Image files in playback order.
        intrinsics: Intrinsics shared by every image, or None.
        per_image_intrinsics: Optional per-image intrinsics overriding the
            shared ones (None entries fall back to the shared intrinsics).
    """

    def __init__(
        self,
        image_paths: list[Path],
        intrinsics: CameraIntrinsics | None = None,
        per_image_intrinsics: list[CameraIntrinsics | None] | None = None,
    ):
        if per_image_intrinsics is not None and len(per_image_intrinsics) != len(
            image_paths
        ):
            raise ValueError("per_image_intrinsics must match image_paths in length")
        self.image_paths = [Path(p) for p in image_paths]
        self.intrinsics = intrinsics
        self.per_image_intrinsics = per_image_intrinsics
        self._position = 0

    def __len__(self) -> int:
        return len(self.image_paths)

    def read(self) -> FeedItem | None:
        if self._position >= len(self.image_paths):
            return None

        img_path = self.image_paths[self._position]
        image = cv2.imread(str(img_path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise OSError(f"Failed to read image: {img_path}")

        intrinsics = self.intrinsics
        if self.per_image_intrinsics is not None:
            intrinsics = self.per_image_intrinsics[self._position] or intrinsics

        return FeedItem(image=image, intrinsics=intrinsics, image_id=str(img_path))

    def advance(self) -> None:
        self._position += 1

    def close(self) -> None:
        pass


class VideoFeed:
    """Feed over the frames of a video file.

    Args:
        video_path: Path to the video file.
        intrinsics: Intrinsics shared by every frame, or None.

    Raises:
        OSError: If the video cannot be opened.
    """

    def __init__(self, video_path: str | Path, intrinsics: CameraIntrinsics | None):
        self.video_path = Path(video_path)
        self.intrinsics = intrinsics
        self._capture = cv2.VideoCapture(str(self.video_path))
        if not self._capture.isOpened():
            raise OSError(f"Failed to open video: {self.video_path}")
        self._position = 0
        self._current: np.ndarray | None = None
        self._exhausted = False

    def read(self) -> FeedItem | None:
        if self._current is None and not self._exhausted:
            ok, frame = self._capture.read()
            if not ok or frame is None:
                self._exhausted = True
            else:
                self._current = _to_gray(frame)

        if self._current is None:
            return None

        return FeedItem(
            image=self._current,
            intrinsics=self.intrinsics,
            image_id=f"{self.video_path.name}:{self._position:06d}",
        )

    def advance(self) -> None:
        if self._current is None and not self._exhausted:
            # Skip a frame that was never read
            if not self._capture.grab():
                self._exhausted = True
        self._current = None
        self._position += 1

    def close(self) -> None:
        self._capture.release()


def read_image_list(list_path: str | Path) -> tuple[list[Path], list[CameraIntrinsics | None]]:
    """Parse an image list text file.

    Each non-empty line holds an image path, optionally followed by the
    eight intrinsics values ``width height focal ppx ppy k1 k2 k3``.
    Relative paths are resolved against the list file's folder.

    Args:
        list_path: Path to the list file.

    Returns:
        Tuple of (image_paths, per_image_intrinsics).

    Raises:
        ValueError: If a line has a wrong number of fields.
    """
    list_path = Path(list_path)
    paths: list[Path] = []
    intrinsics: list[CameraIntrinsics | None] = []

    with open(list_path) as f:
        for line_no, line in enumerate(f, start=1):
            fields = line.split()
            if not fields or fields[0].startswith("#"):
                continue
            img_path = Path(fields[0])
            if not img_path.is_absolute():
                img_path = list_path.parent / img_path
            if len(fields) == 1:
                intrinsics.append(None)
            elif len(fields) == 9:
                intrinsics.append(
                    CameraIntrinsics.from_values([float(v) for v in fields[1:]])
                )
            else:
                raise ValueError(
                    f"{list_path}:{line_no}: expected 1 or 9 fields, got {len(fields)}"
                )
            paths.append(img_path)

    return paths, intrinsics


def open_feed(media_path: str | Path, intrinsics_path: str | Path | None) -> CameraFeed:
    """Create the feed matching a media path.

    Args:
        media_path: Video file, directory of images, image list text file,
            or a single image.
        intrinsics_path: Intrinsics calibration file for this camera, or
            None when the images carry no calibration.

    Returns:
        Camera feed positioned on its first image.

    Raises:
        InitializationError: If the media or intrinsics cannot be loaded.
    """
    media_path = Path(media_path)
    if not media_path.exists():
        raise InitializationError(f"Media path does not exist: {media_path}")

    intrinsics = None
    if intrinsics_path:
        try:
            intrinsics = load_intrinsics(intrinsics_path)
        except (OSError, ValueError) as e:
            raise InitializationError(
                f"Failed to load intrinsics {intrinsics_path}: {e}"
            ) from e

    suffix = media_path.suffix.lower()
    try:
        if media_path.is_dir():
            files = sorted(
                (
                    p
                    for p in media_path.iterdir()
                    if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
                ),
                key=lambda p: p.name,
            )
            if not files:
                raise InitializationError(f"No images found in directory: {media_path}")
            logger.debug("Image directory %s: %d images", media_path, len(files))
            return ImageSequenceFeed(files, intrinsics)

        if suffix in LIST_EXTENSIONS:
            paths, per_image = read_image_list(media_path)
            if not paths:
                raise InitializationError(f"Image list is empty: {media_path}")
            return ImageSequenceFeed(paths, intrinsics, per_image)

        if suffix in IMAGE_EXTENSIONS:
            return ImageSequenceFeed([media_path], intrinsics)

        if suffix in VIDEO_EXTENSIONS:
            return VideoFeed(media_path, intrinsics)
    except (OSError, ValueError) as e:
        raise InitializationError(f"Failed to open media {media_path}: {e}") from e

    raise InitializationError(f"Unsupported media type: {media_path}")


def media_folder(media_path: str | Path) -> str:
    """Folder holding a camera's media (the path itself for directories)."""
    media_path = Path(media_path)
    return str(media_path if media_path.is_dir() else media_path.parent)


class FeedSet:
    """Synchronized reader over the feeds of all rig cameras.

    Every read pulls one item from each feed in camera order and advances
    that feed right away, stopping at the first camera that makes the frame
    set unusable. A frame set is either complete or the stream has ended
    for every camera; anything in between is a desynchronization.

    Args:
        feeds: One feed per camera, camera 0 first.

    Raises:
        ValueError: If no feed is given.
    """

    def __init__(self, feeds: list[CameraFeed]):
        if not feeds:
            raise ValueError("FeedSet needs at least one feed")
        self._feeds = list(feeds)
        self._frame_index = 0

    @property
    def num_cameras(self) -> int:
        return len(self._feeds)

    @property
    def frame_index(self) -> int:
        """Index of the next frame set to be read."""
        return self._frame_index

    def _read(self, cam_idx: int) -> FeedItem | None:
        """Read one feed and advance it, whether or not the read succeeds."""
        feed = self._feeds[cam_idx]
        try:
            return feed.read()
        except OSError as e:
            raise FeedReadError(cam_idx, self._frame_index, str(e)) from e
        finally:
            feed.advance()

    def _check_intrinsics(self, cam_idx: int, item: FeedItem) -> FeedItem:
        if not item.has_intrinsics:
            raise MissingIntrinsicsError(cam_idx, self._frame_index, item.image_id)
        return item

    def read_synchronized(self) -> FrameSet | None:
        """Read the next synchronized frame set.

        Cameras are checked as soon as they are read, so a fatal error stops
        the read before the remaining cameras are decoded.

        Returns:
            The frame set, or None when every feed reached its end.

        Raises:
            FeedDesyncError: If some feeds ended and others did not.
            MissingIntrinsicsError: If an image comes without intrinsics.
            FeedReadError: If a feed fails to decode its image.
        """
        first = self._read(0)
        if first is None:
            for cam_idx in range(1, len(self._feeds)):
                if self._read(cam_idx) is not None:
                    raise FeedDesyncError(cam_idx, self._frame_index, exhausted=False)
            return None

        items = [self._check_intrinsics(0, first)]
        for cam_idx in range(1, len(self._feeds)):
            item = self._read(cam_idx)
            if item is None:
                raise FeedDesyncError(cam_idx, self._frame_index, exhausted=True)
            items.append(self._check_intrinsics(cam_idx, item))

        frame_set = FrameSet(
            index=self._frame_index,
            images=[item.image for item in items],
            intrinsics=[item.intrinsics for item in items],
            image_ids=[item.image_id for item in items],
        )
        self._frame_index += 1
        return frame_set

    def __iter__(self) -> Iterator[FrameSet]:
        while True:
            frame_set = self.read_synchronized()
            if frame_set is None:
                return
            yield frame_set

    def close(self) -> None:
        for feed in self._feeds:
            feed.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
