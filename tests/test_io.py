"""Tests for camera feeds and synchronized feed sets."""

import cv2
import numpy as np
import pytest

from rigloc.calibration import save_intrinsics
from rigloc.errors import (
    FeedDesyncError,
    FeedReadError,
    InitializationError,
    MissingIntrinsicsError,
)
from rigloc.io import (
    FeedSet,
    ImageSequenceFeed,
    VideoFeed,
    media_folder,
    open_feed,
    read_image_list,
)


@pytest.fixture
def image_dir(tmp_path):
    """Directory with three small grayscale PNG images."""
    folder = tmp_path / "cam0"
    folder.mkdir()
    for k in range(3):
        cv2.imwrite(str(folder / f"frame_{k:03d}.png"), np.full((24, 32), 40 * k, np.uint8))
    (folder / "notes.md").write_text("not an image")
    return folder


@pytest.fixture
def intrinsics_file(tmp_path, intrinsics):
    path = tmp_path / "intrinsics.txt"
    save_intrinsics(intrinsics, path)
    return path


class TestFeedSet:
    """Tests for FeedSet.read_synchronized()."""

    @pytest.mark.parametrize("num_cameras", [1, 2, 4])
    def test_reads_k_frame_sets(self, make_feed_set, num_cameras):
        feed_set, _ = make_feed_set([5] * num_cameras)
        frame_sets = list(feed_set)
        assert len(frame_sets) == 5
        assert [fs.index for fs in frame_sets] == [0, 1, 2, 3, 4]
        assert all(len(fs.images) == num_cameras for fs in frame_sets)
        assert frame_sets[2].image_ids[num_cameras - 1] == f"cam{num_cameras - 1}/frame_0002.png"

    def test_end_of_stream_is_none(self, make_feed_set):
        feed_set, _ = make_feed_set([0, 0])
        assert feed_set.read_synchronized() is None

    def test_reference_camera_exhausted_first(self, make_feed_set):
        """Camera 0 ends while camera 2 still has images."""
        feed_set, _ = make_feed_set([2, 2, 3])
        assert feed_set.read_synchronized() is not None
        assert feed_set.read_synchronized() is not None
        with pytest.raises(FeedDesyncError) as exc_info:
            feed_set.read_synchronized()
        assert exc_info.value.camera_index == 2
        assert exc_info.value.frame_index == 2
        assert exc_info.value.exhausted is False

    def test_other_camera_exhausted_first(self, make_feed_set):
        """Camera 1 ends while camera 0 still has images."""
        feed_set, _ = make_feed_set([3, 1])
        feed_set.read_synchronized()
        with pytest.raises(FeedDesyncError) as exc_info:
            feed_set.read_synchronized()
        assert exc_info.value.camera_index == 1
        assert exc_info.value.frame_index == 1
        assert exc_info.value.exhausted is True

    def test_every_feed_advances_on_failure(self, make_feed_set):
        feed_set, feeds = make_feed_set([1, 2])
        feed_set.read_synchronized()
        with pytest.raises(FeedDesyncError):
            feed_set.read_synchronized()
        assert [feed.position for feed in feeds] == [2, 2]

    def test_missing_intrinsics(self, make_items, list_feed):
        items = make_items(2, camera=1)
        items[1].intrinsics = None
        feed_set = FeedSet([list_feed(make_items(2)), list_feed(items)])
        feed_set.read_synchronized()
        with pytest.raises(MissingIntrinsicsError) as exc_info:
            feed_set.read_synchronized()
        assert exc_info.value.camera_index == 1
        assert exc_info.value.frame_index == 1
        assert exc_info.value.image_id == "cam1/frame_0001.png"

    def test_stops_at_first_camera_without_intrinsics(self, make_items, list_feed):
        """Cameras after the offending one are not decoded."""
        items = make_items(1)
        items[0].intrinsics = None
        later = list_feed(make_items(1, camera=1))
        feed_set = FeedSet([list_feed(items), later])
        with pytest.raises(MissingIntrinsicsError) as exc_info:
            feed_set.read_synchronized()
        assert exc_info.value.camera_index == 0
        assert later.reads == 0

    def test_unreadable_image_names_camera(
        self, tmp_path, intrinsics, make_items, list_feed
    ):
        folder = tmp_path / "cam1"
        folder.mkdir()
        cv2.imwrite(str(folder / "000.png"), np.zeros((24, 32), np.uint8))
        (folder / "001.png").write_bytes(b"not a png")
        corrupt = ImageSequenceFeed(sorted(folder.iterdir()), intrinsics)
        feed_set = FeedSet([list_feed(make_items(2)), corrupt])

        assert feed_set.read_synchronized() is not None
        with pytest.raises(FeedReadError) as exc_info:
            feed_set.read_synchronized()
        assert exc_info.value.camera_index == 1
        assert exc_info.value.frame_index == 1
        assert "001.png" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_context_manager_closes_feeds(self, make_feed_set):
        feed_set, feeds = make_feed_set([1, 1])
        with feed_set:
            pass
        assert all(feed.closed for feed in feeds)

    def test_requires_a_feed(self):
        with pytest.raises(ValueError):
            FeedSet([])


class TestImageFeeds:
    """Tests for image based feeds and open_feed()."""

    def test_image_directory(self, image_dir, intrinsics_file):
        feed = open_feed(image_dir, intrinsics_file)
        assert isinstance(feed, ImageSequenceFeed)
        assert len(feed) == 3
        item = feed.read()
        assert item.image.shape == (24, 32)
        assert item.image_id.endswith("frame_000.png")
        assert item.has_intrinsics
        feed.advance()
        assert feed.read().image[0, 0] == 40

    def test_read_does_not_advance(self, image_dir):
        feed = open_feed(image_dir, None)
        assert feed.read().image_id == feed.read().image_id
        assert not feed.read().has_intrinsics

    def test_single_image(self, image_dir, intrinsics_file):
        feed = open_feed(image_dir / "frame_001.png", intrinsics_file)
        assert feed.read() is not None
        feed.advance()
        assert feed.read() is None

    def test_image_list_with_per_image_intrinsics(self, tmp_path, image_dir):
        list_path = tmp_path / "list.txt"
        list_path.write_text(
            "# comment\n"
            "cam0/frame_000.png 640 480 510 320 240 0 0 0\n"
            "\n"
            f"{image_dir / 'frame_001.png'}\n"
        )
        paths, per_image = read_image_list(list_path)
        assert paths == [image_dir / "frame_000.png", image_dir / "frame_001.png"]
        assert per_image[0].focal == 510.0
        assert per_image[1] is None

        feed = open_feed(list_path, None)
        assert feed.read().intrinsics.focal == 510.0
        feed.advance()
        assert feed.read().intrinsics is None

    def test_image_list_bad_line(self, tmp_path):
        list_path = tmp_path / "list.txt"
        list_path.write_text("a.png 640 480\n")
        with pytest.raises(ValueError, match="expected 1 or 9 fields"):
            read_image_list(list_path)
        with pytest.raises(InitializationError):
            open_feed(list_path, None)

    def test_missing_media(self, tmp_path):
        with pytest.raises(InitializationError, match="does not exist"):
            open_feed(tmp_path / "nothing.mp4", None)

    def test_bad_intrinsics(self, image_dir, tmp_path):
        bad = tmp_path / "bad.txt"
        bad.write_text("640 480")
        with pytest.raises(InitializationError, match="intrinsics"):
            open_feed(image_dir, bad)

    def test_empty_directory(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(InitializationError, match="No images"):
            open_feed(empty, None)

    def test_unsupported_type(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("1,2,3")
        with pytest.raises(InitializationError, match="Unsupported"):
            open_feed(path, None)

    def test_unreadable_image(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not a png")
        feed = ImageSequenceFeed([path])
        with pytest.raises(OSError):
            feed.read()

    def test_media_folder(self, image_dir):
        assert media_folder(image_dir) == str(image_dir)
        assert media_folder(image_dir / "frame_000.png") == str(image_dir)


def test_video_feed(tmp_path, intrinsics):
    """Frames are read once, and advance() skips frames never read."""
    path = tmp_path / "video.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10, (32, 24))
    if not writer.isOpened():
        pytest.skip("MJPG video writer not available")
    for k in range(4):
        writer.write(np.full((24, 32, 3), 50 * k, np.uint8))
    writer.release()

    feed = VideoFeed(path, intrinsics)
    first = feed.read()
    assert first.image.ndim == 2
    assert first.image_id == "video.avi:000000"
    assert feed.read().image_id == first.image_id
    feed.advance()
    feed.advance()  # frame 1 is skipped without decoding
    assert feed.read().image_id == "video.avi:000002"
    feed.advance()
    feed.advance()
    assert feed.read() is None
    feed.close()
