"""Per-frame results, the result log and timing statistics."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import RigLocError
from ..geometry import Pose3
from ..localization.types import LocalizationResult


class PipelineState(str, Enum):
    """Lifecycle states of a pipeline run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class TimingStats:
    """Immutable accumulator of per-frame durations (milliseconds).

    ``add`` returns a new accumulator. With no samples, every statistic
    is 0.
    """

    count: int = 0
    total: float = 0.0
    min: float = 0.0
    max: float = 0.0

    def add(self, duration_ms: float) -> "TimingStats":
        if self.count == 0:
            return TimingStats(1, duration_ms, duration_ms, duration_ms)
        return TimingStats(
            count=self.count + 1,
            total=self.total + duration_ms,
            min=min(self.min, duration_ms),
            max=max(self.max, duration_ms),
        )

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "total_ms": self.total,
            "mean_ms": self.mean,
            "min_ms": self.min,
            "max_ms": self.max,
        }


@dataclass(frozen=True)
class FrameResult:
    """Outcome of one attempted frame.

    Attributes:
        frame_index: Zero-based frame index.
        is_localized: Whether the rig was localized.
        rig_pose: Rig pose, None on failure.
        cameras: Per-camera results in camera order.
        duration_ms: Wall-clock duration of the localization call.
    """

    frame_index: int
    is_localized: bool
    rig_pose: Pose3 | None
    cameras: tuple[LocalizationResult, ...]
    duration_ms: float

    def to_dict(self, include_timing: bool = True) -> dict[str, Any]:
        record = {
            "frame": self.frame_index,
            "is_localized": self.is_localized,
            "rig_pose": self.rig_pose.to_dict() if self.rig_pose is not None else None,
            "cameras": [camera.to_dict() for camera in self.cameras],
        }
        if include_timing:
            record["duration_ms"] = self.duration_ms
        return record


class ResultLog:
    """Append-only log of frame results with running timing statistics."""

    def __init__(self):
        self._entries: list[FrameResult] = []
        self._stats = TimingStats()

    def append(self, result: FrameResult) -> None:
        if result.frame_index != len(self._entries):
            raise ValueError(
                f"Frame {result.frame_index} appended out of order "
                f"(expected {len(self._entries)})"
            )
        self._entries.append(result)
        self._stats = self._stats.add(result.duration_ms)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __getitem__(self, index: int) -> FrameResult:
        return self._entries[index]

    @property
    def stats(self) -> TimingStats:
        return self._stats

    @property
    def frames_localized(self) -> int:
        return sum(1 for entry in self._entries if entry.is_localized)

    def to_records(self, include_timing: bool = True) -> list[dict[str, Any]]:
        return [entry.to_dict(include_timing) for entry in self._entries]


@dataclass(frozen=True)
class RunSummary:
    """Final report of a pipeline run.

    Attributes:
        state: COMPLETED or ABORTED.
        frames_attempted: Number of frames passed to the localizer.
        frames_localized: Number of frames with a rig pose.
        stats: Timing statistics over all attempted frames.
        error: The error that aborted the run, if any.
    """

    state: PipelineState
    frames_attempted: int
    frames_localized: int
    stats: TimingStats = field(default_factory=TimingStats)
    error: RigLocError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.COMPLETED

    def format(self) -> str:
        """Human-readable summary lines."""
        lines = [
            f"Localized {self.frames_localized} / {self.frames_attempted} images",
            f"Processing took {self.stats.total / 1000:.3f} [s]",
            f"Mean {self.stats.mean:.1f} [ms]",
            f"Max {self.stats.max:.1f} [ms]",
            f"Min {self.stats.min:.1f} [ms]",
        ]
        if self.error is not None:
            lines.append(f"Aborted: {self.error}")
        return "\n".join(lines)
