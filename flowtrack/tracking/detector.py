"""
Corner detection for seeding the tracker.

Uses Shi-Tomasi "good features to track" corners. Results are ordered by
corner response, strongest first, and are deterministic for a given image
and parameter set.
"""

import cv2
import numpy as np

from flowtrack.core.config import TrackerConfig
from flowtrack.core.frame import ensure_gray


def _check_params(
    max_count: int,
    quality_level: float,
    min_distance: float,
    block_size: int,
) -> None:
    if max_count < 1:
        raise ValueError(f"max_count must be >= 1, got {max_count}")
    if not 0 < quality_level <= 1:
        raise ValueError(f"quality_level must be in (0, 1], got {quality_level}")
    if min_distance < 0:
        raise ValueError(f"min_distance must be >= 0, got {min_distance}")
    if block_size < 1:
        raise ValueError(f"block_size must be >= 1, got {block_size}")


def detect_features(
    image: np.ndarray,
    max_count: int,
    quality_level: float,
    min_distance: float,
    block_size: int = 3,
    mask: np.ndarray | None = None,
) -> np.ndarray:
    """
    Find good-to-track corners in a grayscale image.

    Args:
        image: 8-bit single-channel frame sample
        max_count: Maximum number of points to return
        quality_level: Minimum accepted response as a fraction of the best corner
        min_distance: Minimum Euclidean distance between returned points
        block_size: Neighborhood size for the corner response
        mask: Optional uint8 mask; detection only where mask is non-zero

    Returns:
        Nx2 float32 array of (x, y) points, 0 <= N <= max_count

    Raises:
        InvalidFrameError: If the image is malformed
        ValueError: If a parameter is out of range or the mask doesn't fit
    """
    image = ensure_gray(image)
    _check_params(max_count, quality_level, min_distance, block_size)

    if mask is not None and mask.shape[:2] != image.shape:
        raise ValueError(
            f"mask shape {mask.shape} does not match image shape {image.shape}"
        )

    corners = cv2.goodFeaturesToTrack(
        image,
        maxCorners=max_count,
        qualityLevel=quality_level,
        minDistance=min_distance,
        mask=mask,
        blockSize=block_size,
    )

    if corners is None:
        return np.empty((0, 2), dtype=np.float32)

    return corners.reshape(-1, 2).astype(np.float32)


class ShiTomasiDetector:
    """
    Feature detector bound to a fixed parameter set.

    Example:
        >>> detector = ShiTomasiDetector(max_count=300, quality_level=0.005)
        >>> points = detector.detect(gray)
    """

    def __init__(
        self,
        max_count: int = 300,
        quality_level: float = 0.005,
        min_distance: float = 3.0,
        block_size: int = 3,
    ):
        _check_params(max_count, quality_level, min_distance, block_size)
        self.max_count = max_count
        self.quality_level = quality_level
        self.min_distance = min_distance
        self.block_size = block_size

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "ShiTomasiDetector":
        """Create a detector from the detection fields of a config."""
        return cls(
            max_count=config.max_features,
            quality_level=config.quality_level,
            min_distance=config.min_distance,
            block_size=config.block_size,
        )

    def detect(self, image: np.ndarray, mask: np.ndarray | None = None) -> np.ndarray:
        """Detect corners in image. See detect_features."""
        return detect_features(
            image,
            self.max_count,
            self.quality_level,
            self.min_distance,
            block_size=self.block_size,
            mask=mask,
        )

    def __repr__(self) -> str:
        return (
            f"ShiTomasiDetector(max_count={self.max_count}, "
            f"quality_level={self.quality_level}, "
            f"min_distance={self.min_distance})"
        )
