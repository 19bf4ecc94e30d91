"""Pipeline context builder for one-time initialization."""

import logging

from ..calibration import load_rig_calibration
from ..config import RigLocalizationConfig
from ..errors import ConfigurationError, InitializationError
from ..export import create_exporter
from ..io import FeedSet, media_folder, open_feed
from ..localization.factory import create_localizer
from ..localization.parameters import build_localization_parameters
from .context import PipelineContext

logger = logging.getLogger(__name__)


def build_pipeline_context(config: RigLocalizationConfig) -> PipelineContext:
    """Validate the configuration and build the pipeline collaborators.

    Everything that can be checked without touching the media is checked
    first, so a bad configuration fails before the map is loaded or any
    feed is opened.

    Args:
        config: Full localization configuration.

    Returns:
        PipelineContext with the localizer, feeds, subposes and exporter.

    Raises:
        ConfigurationError: If estimators, camera counts or the rig
            calibration are invalid.
        InitializationError: If the localizer or a camera feed cannot be
            initialized.
    """
    # 1. Estimator thresholds
    parameters = build_localization_parameters(config)

    # 2. Camera counts
    num_cameras = config.num_cameras
    if num_cameras < 1:
        raise ConfigurationError("At least one media path is required")
    if len(config.camera_intrinsics) != num_cameras:
        raise ConfigurationError(
            f"The number of intrinsics files ({len(config.camera_intrinsics)}) "
            f"must match the number of media paths ({num_cameras})"
        )

    # 3. Rig geometry
    subposes = load_rig_calibration(config.calibration, num_cameras)

    # 4. Localizer
    logger.info("Loading map from %s", config.sfm_data)
    localizer = create_localizer(config)
    if not localizer.is_initialized():
        raise InitializationError(
            f"Localizer could not be initialized from map {config.sfm_data!r}"
        )

    # 5. Camera feeds
    feeds = []
    for cam_idx, (media_path, intrinsics_path) in enumerate(
        zip(config.media_paths, config.camera_intrinsics, strict=True)
    ):
        try:
            feeds.append(open_feed(media_path, intrinsics_path))
        except InitializationError as e:
            for feed in feeds:
                feed.close()
            raise InitializationError(f"Camera {cam_idx}: {e}") from e
        logger.info("Camera %d: %s", cam_idx, media_path)

    # 6. Exporter
    exporter = create_exporter(config.output.trajectory_path, num_cameras)

    return PipelineContext(
        config=config,
        parameters=parameters,
        localizer=localizer,
        feeds=FeedSet(feeds),
        subposes=subposes,
        exporter=exporter,
        media_dirs=[media_folder(p) for p in config.media_paths],
    )
