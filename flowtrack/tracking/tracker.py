"""
Feature point tracking with periodic re-seeding.

This module provides the FeatureTracker class, which follows a sparse set
of corners from frame to frame with Lucas-Kanade optical flow and throws
the whole set away for a fresh detection every ``reseed_cadence`` frames,
or as soon as it has nothing left to track.
"""

import logging
from dataclasses import dataclass

import numpy as np

from flowtrack.core.base import FeatureDetector, FlowEstimator
from flowtrack.core.config import TrackerConfig
from flowtrack.core.frame import ensure_gray, ensure_same_size
from flowtrack.tracking.detector import ShiTomasiDetector
from flowtrack.tracking.estimator import PyramidalLKEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Uninitialized:
    """Tracker phase before the first frame has been seen."""


@dataclass(frozen=True, eq=False)
class Tracking:
    """Tracker phase once a previous frame is available."""
    previous_frame: np.ndarray


TrackerPhase = Uninitialized | Tracking


@dataclass
class TrackingStats:
    """Statistics from a tracking update."""
    frame: int
    tracked: int
    lost: int
    added: int
    total: int

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for reporting."""
        return {
            "frame": self.frame,
            "tracked": self.tracked,
            "lost": self.lost,
            "added": self.added,
            "total": self.total,
        }


@dataclass(frozen=True)
class Correspondence:
    """
    One tracked point and where it went.

    ``previous`` is None on re-seed frames, where fresh detections have no
    counterpart in the previous frame.
    """
    index: int
    previous: tuple[float, float] | None
    current: tuple[float, float]
    valid: bool
    error: float


def _empty_points() -> np.ndarray:
    return np.empty((0, 2), dtype=np.float32)


@dataclass(frozen=True, eq=False)
class TrackingResult:
    """
    Correspondence set produced by one tracker update.

    ``current_points``, ``status`` and ``errors`` always have the same
    length. ``previous_points`` has that length too unless ``reseeded`` is
    set, in which case it holds the points tracked up to the last frame.

    Attributes:
        frame: Value of the frame counter when the frame was processed
        previous_points: Nx2 positions in the previous frame
        current_points: Mx2 positions in the current frame
        status: M bool, True where the point was followed successfully
        errors: M float32 tracking error (zero for fresh detections)
        reseeded: True if current_points came from a new detection
    """
    frame: int
    previous_points: np.ndarray
    current_points: np.ndarray
    status: np.ndarray
    errors: np.ndarray
    reseeded: bool = False

    @classmethod
    def empty(cls, frame: int, previous_points: np.ndarray | None = None) -> "TrackingResult":
        """Result with no current points."""
        return cls(
            frame=frame,
            previous_points=_empty_points() if previous_points is None else previous_points,
            current_points=_empty_points(),
            status=np.empty(0, dtype=bool),
            errors=np.empty(0, dtype=np.float32),
        )

    def __len__(self) -> int:
        return len(self.current_points)

    @property
    def is_empty(self) -> bool:
        return len(self.current_points) == 0

    @property
    def is_aligned(self) -> bool:
        """True if previous_points index-matches current_points."""
        return not self.reseeded and len(self.previous_points) == len(self.current_points)

    @property
    def stats(self) -> TrackingStats:
        if self.reseeded:
            added = len(self.current_points)
            tracked = lost = 0
        else:
            added = 0
            tracked = int(np.count_nonzero(self.status))
            lost = len(self.status) - tracked
        return TrackingStats(
            frame=self.frame,
            tracked=tracked,
            lost=lost,
            added=added,
            total=len(self.current_points),
        )

    def correspondences(self) -> list[Correspondence]:
        """Bundle each point with its previous position, status and error."""
        aligned = self.is_aligned
        records = []
        for i, point in enumerate(self.current_points):
            previous = None
            if aligned:
                px, py = self.previous_points[i]
                previous = (float(px), float(py))
            records.append(Correspondence(
                index=i,
                previous=previous,
                current=(float(point[0]), float(point[1])),
                valid=bool(self.status[i]),
                error=float(self.errors[i]),
            ))
        return records

    def flow_pairs(self) -> list[tuple[tuple[float, float], tuple[float, float]]]:
        """
        (previous, current) pairs for successfully tracked points only.

        Lost points and re-seed frames contribute nothing, so anything
        drawing motion vectors should iterate over this.
        """
        return [
            (c.previous, c.current)
            for c in self.correspondences()
            if c.valid and c.previous is not None
        ]


class FeatureTracker:
    """
    Sparse feature tracker with periodic re-seeding.

    Each call to update() processes one grayscale frame:

    - The first frame only becomes the reference frame.
    - If no points are held, or the frame counter is a multiple of
      ``reseed_cadence``, all points are replaced by a fresh detection.
    - Otherwise the held points are followed into the new frame.

    Lost points are kept in the output with a False status until the next
    re-seed; they are not pruned.

    Attributes:
        config: Parameters used by this tracker
        detector: Object satisfying the FeatureDetector protocol
        estimator: Object satisfying the FlowEstimator protocol

    Example:
        >>> tracker = FeatureTracker(TrackerConfig(reseed_cadence=100))
        >>> for frame_num, frame in reader:
        ...     result = tracker.update(to_gray(frame))
        ...     for prev, curr in result.flow_pairs():
        ...         draw_line(prev, curr)
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        detector: FeatureDetector | None = None,
        estimator: FlowEstimator | None = None,
    ):
        self.config = (config or TrackerConfig()).validate()
        self.detector = (
            detector if detector is not None
            else ShiTomasiDetector.from_config(self.config)
        )
        self.estimator = (
            estimator if estimator is not None
            else PyramidalLKEstimator.from_config(self.config)
        )

        if not isinstance(self.detector, FeatureDetector):
            raise TypeError(f"{self.detector!r} does not provide detect()")
        if not isinstance(self.estimator, FlowEstimator):
            raise TypeError(f"{self.estimator!r} does not provide estimate()")

        self.reset()

    def reset(self) -> None:
        """Return to the uninitialized phase and zero the frame counter."""
        self._phase: TrackerPhase = Uninitialized()
        self._frame_count = 0
        self._last_result = TrackingResult.empty(frame=0)

    @property
    def phase(self) -> TrackerPhase:
        return self._phase

    @property
    def is_initialized(self) -> bool:
        return isinstance(self._phase, Tracking)

    @property
    def frame_count(self) -> int:
        """Number of frames processed since construction or reset()."""
        return self._frame_count

    @property
    def last_result(self) -> TrackingResult:
        return self._last_result

    @property
    def previous_points(self) -> np.ndarray:
        return self._last_result.previous_points.copy()

    @property
    def current_points(self) -> np.ndarray:
        return self._last_result.current_points.copy()

    @property
    def status(self) -> np.ndarray:
        return self._last_result.status.copy()

    def should_reseed(self) -> bool:
        """Whether the next tracked frame will start from a fresh detection."""
        return (
            self._last_result.is_empty
            or self._frame_count % self.config.reseed_cadence == 0
        )

    def update(self, frame: np.ndarray | None) -> TrackingResult:
        """
        Process the next frame.

        Args:
            frame: 8-bit grayscale frame, or None when no new frame arrived

        Returns:
            The correspondence set for this frame. For None, the previous
            result is returned unchanged and no state is touched.

        Raises:
            InvalidFrameError: If the frame is malformed or its size differs
                from the previous frame
        """
        if frame is None:
            return self._last_result

        gray = ensure_gray(frame, "frame")
        frame_num = self._frame_count

        if isinstance(self._phase, Uninitialized):
            result = TrackingResult.empty(frame=frame_num)
        else:
            ensure_same_size(self._phase.previous_frame, gray)
            if self.should_reseed():
                result = self._reseed(gray, frame_num)
            else:
                result = self._track(self._phase.previous_frame, gray, frame_num)

        self._phase = Tracking(previous_frame=gray.copy())
        self._frame_count += 1
        self._last_result = result
        return result

    def _reseed(self, gray: np.ndarray, frame_num: int) -> TrackingResult:
        """Replace all points with a fresh detection on gray."""
        points = np.asarray(self.detector.detect(gray), dtype=np.float32).reshape(-1, 2)
        if len(points) == 0:
            logger.debug("Frame %d: detector found no features", frame_num)
        else:
            logger.debug("Frame %d: re-seeded with %d points", frame_num, len(points))

        return TrackingResult(
            frame=frame_num,
            previous_points=self._last_result.current_points,
            current_points=points,
            status=np.ones(len(points), dtype=bool),
            errors=np.zeros(len(points), dtype=np.float32),
            reseeded=True,
        )

    def _track(
        self,
        prev_gray: np.ndarray,
        gray: np.ndarray,
        frame_num: int,
    ) -> TrackingResult:
        """Follow the held points from prev_gray into gray."""
        prev_points = self._last_result.current_points
        estimate = self.estimator.estimate(prev_gray, gray, prev_points)

        n = len(prev_points)
        points = np.asarray(estimate.points, dtype=np.float32).reshape(-1, 2)
        status = np.asarray(estimate.status, dtype=bool).ravel()
        if estimate.errors is None:
            errors = np.zeros(n, dtype=np.float32)
        else:
            errors = np.asarray(estimate.errors, dtype=np.float32).ravel()

        if not len(points) == len(status) == len(errors) == n:
            raise RuntimeError(
                f"Estimator returned {len(points)} points, {len(status)} "
                f"statuses and {len(errors)} errors for {n} inputs"
            )

        return TrackingResult(
            frame=frame_num,
            previous_points=prev_points,
            current_points=points,
            status=status,
            errors=errors,
        )
