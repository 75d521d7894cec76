"""
Protocols and shared records for the tracking pipeline.

The tracker talks to its detector and estimator only through these
protocols, so any object with matching methods can stand in for the
OpenCV implementations.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np


@dataclass(frozen=True, eq=False)
class FlowEstimate:
    """
    Output of one flow estimation call.

    All three arrays are index-aligned with the input points.

    Attributes:
        points: Estimated positions in the current frame (Nx2 float32)
        status: True where the point was followed successfully (N bool)
        errors: Per-point tracking error magnitude (N float32), or None
    """
    points: np.ndarray
    status: np.ndarray
    errors: np.ndarray | None

    @classmethod
    def empty(cls) -> "FlowEstimate":
        """Estimate for an empty point set."""
        return cls(
            points=np.empty((0, 2), dtype=np.float32),
            status=np.empty(0, dtype=bool),
            errors=np.empty(0, dtype=np.float32),
        )

    def __len__(self) -> int:
        return len(self.points)


@runtime_checkable
class FeatureDetector(Protocol):
    """Protocol for objects that find good-to-track points in an image."""

    def detect(self, image: np.ndarray, mask: np.ndarray | None = None) -> np.ndarray:
        """Return detected points as an Nx2 float32 array, strongest first."""
        ...


@runtime_checkable
class FlowEstimator(Protocol):
    """Protocol for objects that follow points from one frame to the next."""

    def estimate(
        self,
        prev_image: np.ndarray,
        curr_image: np.ndarray,
        prev_points: np.ndarray,
    ) -> FlowEstimate:
        """Estimate current positions of prev_points."""
        ...
