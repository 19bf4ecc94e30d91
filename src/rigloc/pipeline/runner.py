"""Pipeline runner: the synchronized frame loop and its public API."""

import logging
import sys
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

from tqdm import tqdm

from ..config import RigLocalizationConfig
from ..errors import (
    ConfigurationError,
    FeedDesyncError,
    FeedReadError,
    MissingIntrinsicsError,
)
from ..export import NullExporter, TrajectoryExporter
from ..geometry import Pose3
from ..io import FeedSet, FrameSet
from ..localization.parameters import LocalizationParameters
from ..localization.protocol import Localizer
from ..localization.types import LocalizationResult, RigLocalization
from .builder import build_pipeline_context
from .results import FrameResult, PipelineState, ResultLog, RunSummary

logger = logging.getLogger(__name__)


def _not_localized(frame_set: FrameSet) -> RigLocalization:
    """Failed outcome for a frame set whose localization raised."""
    return RigLocalization(
        is_localized=False,
        rig_pose=None,
        results=tuple(
            LocalizationResult(
                image_id=image_id, is_valid=False, pose=None, intrinsics=intrinsics
            )
            for image_id, intrinsics in zip(
                frame_set.image_ids, frame_set.intrinsics, strict=True
            )
        ),
    )


class RigPipeline:
    """Localizes a rig frame by frame over a synchronized feed set.

    Each iteration reads one frame set, calls the localizer once (timed),
    appends the result to the log and forwards a keyframe or a gap to the
    exporter. Localization failures are recorded, not raised; an exception
    from the localizer is logged and counts as a failed frame. A feed
    desynchronization, an unreadable image or missing intrinsics aborts the
    loop; the summary still covers every frame attempted before.

    Args:
        feeds: Synchronized camera feeds.
        localizer: Initialized localization engine.
        parameters: Localization parameters, passed unchanged to every call.
        subposes: N - 1 subposes of the rig.
        exporter: Trajectory exporter (None = discard).
        media_dirs: Per-camera media folders reported to the exporter.
        quiet: Disable the progress bar.
        clock: Monotonic clock in seconds.

    Raises:
        ConfigurationError: If the number of subposes is not N - 1.
    """

    def __init__(
        self,
        feeds: FeedSet,
        localizer: Localizer,
        parameters: LocalizationParameters,
        subposes: Sequence[Pose3],
        exporter: TrajectoryExporter | None = None,
        media_dirs: Sequence[str] | None = None,
        quiet: bool = False,
        clock: Callable[[], float] = time.perf_counter,
    ):
        if len(subposes) != feeds.num_cameras - 1:
            raise ConfigurationError(
                f"A rig of {feeds.num_cameras} cameras needs "
                f"{feeds.num_cameras - 1} subposes, got {len(subposes)}"
            )
        self.feeds = feeds
        self.localizer = localizer
        self.parameters = parameters
        self.subposes = list(subposes)
        self.exporter = exporter if exporter is not None else NullExporter()
        self.media_dirs = list(media_dirs) if media_dirs else [""] * feeds.num_cameras
        self.quiet = quiet
        self.clock = clock
        self.log = ResultLog()
        self.state = PipelineState.IDLE

    def process_frame(self, frame_set: FrameSet) -> FrameResult:
        """Localize one frame set, record it and export it."""
        start = self.clock()
        try:
            localization = self.localizer.localize_rig(
                frame_set.images, self.parameters, frame_set.intrinsics, self.subposes
            )
        except Exception:
            logger.exception("Frame %d: localization failed", frame_set.index)
            localization = _not_localized(frame_set)
        duration_ms = (self.clock() - start) * 1000.0

        cameras = tuple(
            replace(result, image_id=image_id)
            for result, image_id in zip(
                localization.results, frame_set.image_ids, strict=True
            )
        )
        is_localized = localization.is_localized and localization.rig_pose is not None
        result = FrameResult(
            frame_index=frame_set.index,
            is_localized=is_localized,
            rig_pose=localization.rig_pose if is_localized else None,
            cameras=cameras,
            duration_ms=duration_ms,
        )
        self.log.append(result)

        if is_localized:
            self.exporter.add_keyframe(
                frame_set.index,
                result.rig_pose,
                [camera.pose for camera in cameras],
                [camera.intrinsics for camera in cameras],
                self.media_dirs,
            )
            logger.debug("Frame %d: localized in %.1f ms", frame_set.index, duration_ms)
        else:
            self.exporter.jump_keyframe(frame_set.index)
            logger.warning("Frame %d: unable to localize the rig", frame_set.index)
        return result

    def run(self) -> RunSummary:
        """Run the frame loop until end of stream or a fatal feed error.

        Returns:
            RunSummary with the final state and statistics.
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already ran (state: {self.state.value})")
        self.state = PipelineState.RUNNING
        error = None

        try:
            for frame_set in tqdm(
                self.feeds,
                desc="Localizing frames",
                disable=self.quiet or not sys.stderr.isatty(),
                unit="frame",
            ):
                self.process_frame(frame_set)
            self.state = PipelineState.COMPLETED
        except (FeedDesyncError, FeedReadError, MissingIntrinsicsError) as e:
            logger.error("Aborting at frame %d: %s", self.feeds.frame_index, e)
            self.state = PipelineState.ABORTED
            error = e
        finally:
            self.exporter.close()

        summary = RunSummary(
            state=self.state,
            frames_attempted=len(self.log),
            frames_localized=self.log.frames_localized,
            stats=self.log.stats,
            error=error,
        )
        for line in summary.format().splitlines():
            logger.info(line)
        return summary


def run_pipeline(config: RigLocalizationConfig) -> RunSummary:
    """Build the pipeline from a configuration and run it.

    Args:
        config: Full localization configuration.

    Returns:
        RunSummary of the run.

    Raises:
        ConfigurationError: If the configuration is invalid.
        InitializationError: If the localizer or a feed cannot be built.
    """
    ctx = build_pipeline_context(config)

    with ctx.feeds as feeds:
        pipeline = RigPipeline(
            feeds,
            ctx.localizer,
            ctx.parameters,
            ctx.subposes,
            exporter=ctx.exporter,
            media_dirs=ctx.media_dirs,
            quiet=config.output.quiet,
        )
        return pipeline.run()
