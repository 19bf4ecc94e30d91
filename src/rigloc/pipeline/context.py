"""Pipeline context dataclass for the objects built once at startup."""

from dataclasses import dataclass

from ..config import RigLocalizationConfig
from ..export import TrajectoryExporter
from ..geometry import Pose3
from ..io import FeedSet
from ..localization.parameters import LocalizationParameters
from ..localization.protocol import Localizer


@dataclass
class PipelineContext:
    """Everything that stays constant across frames.

    Created once by build_pipeline_context(). The context owns the
    localizer, the feeds and the exporter for the duration of the run.
    """

    config: RigLocalizationConfig
    parameters: LocalizationParameters
    localizer: Localizer
    feeds: FeedSet
    subposes: list[Pose3]
    exporter: TrajectoryExporter
    media_dirs: list[str]
