"""
Sparse optical flow estimation using pyramidal Lucas-Kanade.

Each point is searched coarse-to-fine across an image pyramid. A point
is reported as lost when the solver fails, when the estimate leaves the
image, or, with forward-backward checking enabled, when tracking it back
does not return close to where it started.
"""

import cv2
import numpy as np

from flowtrack.core.base import FlowEstimate
from flowtrack.core.config import TrackerConfig
from flowtrack.core.frame import as_points, ensure_gray, ensure_same_size


class PyramidalLKEstimator:
    """
    Lucas-Kanade point tracker over an image pyramid.

    The defaults match OpenCV's calcOpticalFlowPyrLK defaults.

    Attributes:
        lk_params: Keyword arguments passed to cv2.calcOpticalFlowPyrLK
        fb_threshold: Forward-backward error limit in pixels, or None

    Example:
        >>> estimator = PyramidalLKEstimator(max_level=3)
        >>> estimate = estimator.estimate(prev_gray, gray, points)
        >>> good = estimate.points[estimate.status]
    """

    def __init__(
        self,
        win_size: int = 21,
        max_level: int = 3,
        max_iterations: int = 30,
        epsilon: float = 0.01,
        min_eig_threshold: float = 1e-4,
        fb_threshold: float | None = None,
    ):
        """
        Initialize the estimator.

        Args:
            win_size: Side of the square search window at each pyramid level
            max_level: Highest pyramid level (0 = single level)
            max_iterations: Solver iteration limit
            epsilon: Solver convergence threshold
            min_eig_threshold: Patches with a weaker gradient matrix are rejected
            fb_threshold: Enable forward-backward checking with this limit
        """
        self.fb_threshold = fb_threshold
        self.lk_params = {
            "winSize": (win_size, win_size),
            "maxLevel": max_level,
            "criteria": (
                cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
                max_iterations,
                epsilon,
            ),
            "minEigThreshold": min_eig_threshold,
        }

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "PyramidalLKEstimator":
        """Create an estimator from the flow fields of a config."""
        return cls(
            win_size=config.win_size,
            max_level=config.max_level,
            max_iterations=config.max_iterations,
            epsilon=config.epsilon,
            min_eig_threshold=config.min_eig_threshold,
            fb_threshold=config.fb_threshold,
        )

    def estimate(
        self,
        prev_image: np.ndarray,
        curr_image: np.ndarray,
        prev_points: np.ndarray,
    ) -> FlowEstimate:
        """
        Follow points from prev_image into curr_image.

        Args:
            prev_image: Grayscale frame the points refer to
            curr_image: Grayscale frame to track into (same size)
            prev_points: Nx2 (or Nx1x2) point positions in prev_image

        Returns:
            FlowEstimate aligned index-for-index with prev_points. Positions
            of lost points are not meaningful and must be gated on status.

        Raises:
            InvalidFrameError: If either image is malformed or sizes differ
            ValueError: If prev_points is not an Nx2 point array
        """
        prev_image = ensure_gray(prev_image, "prev_image")
        curr_image = ensure_gray(curr_image, "curr_image")
        ensure_same_size(prev_image, curr_image)

        points = as_points(prev_points, "prev_points")
        if len(points) == 0:
            return FlowEstimate.empty()

        lk_input = points.reshape(-1, 1, 2)
        curr_points, status, error = cv2.calcOpticalFlowPyrLK(
            prev_image, curr_image, lk_input, None, **self.lk_params
        )

        curr_points = curr_points.reshape(-1, 2)
        valid = status.ravel() == 1
        errors = error.ravel().astype(np.float32)

        valid &= self._in_bounds(curr_points, curr_image.shape)

        if self.fb_threshold is not None and np.any(valid):
            valid &= self._forward_backward(
                prev_image, curr_image, points, curr_points
            )

        return FlowEstimate(
            points=curr_points.astype(np.float32),
            status=valid,
            errors=errors,
        )

    @staticmethod
    def _in_bounds(points: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
        """Mask of points that are finite and inside the image."""
        h, w = shape
        x = points[:, 0]
        y = points[:, 1]
        return (
            np.isfinite(x) & np.isfinite(y) &
            (x >= 0) & (x < w) &
            (y >= 0) & (y < h)
        )

    def _forward_backward(
        self,
        prev_image: np.ndarray,
        curr_image: np.ndarray,
        prev_points: np.ndarray,
        curr_points: np.ndarray,
    ) -> np.ndarray:
        """Mask of points that track back to within fb_threshold of their start."""
        back_points, back_status, _ = cv2.calcOpticalFlowPyrLK(
            curr_image,
            prev_image,
            curr_points.reshape(-1, 1, 2).astype(np.float32),
            None,
            **self.lk_params,
        )

        fb_error = np.linalg.norm(
            prev_points - back_points.reshape(-1, 2), axis=1
        )

        return (back_status.ravel() == 1) & (fb_error < self.fb_threshold)

    def __repr__(self) -> str:
        return (
            f"PyramidalLKEstimator(win_size={self.lk_params['winSize'][0]}, "
            f"max_level={self.lk_params['maxLevel']}, "
            f"fb_threshold={self.fb_threshold})"
        )
