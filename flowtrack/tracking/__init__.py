"""
Tracking module - Corner detection, optical flow and the tracker itself.

This module provides:
- ShiTomasiDetector / detect_features: Good-to-track corner detection
- PyramidalLKEstimator: Pyramidal Lucas-Kanade point tracking
- FeatureTracker: Frame-by-frame tracking with periodic re-seeding

Example:
    >>> from flowtrack.tracking import FeatureTracker
    >>> tracker = FeatureTracker()
    >>> for gray in frames:
    ...     result = tracker.update(gray)
    ...     print(result.stats)
"""

from flowtrack.tracking.detector import ShiTomasiDetector, detect_features
from flowtrack.tracking.estimator import PyramidalLKEstimator
from flowtrack.tracking.tracker import (
    FeatureTracker,
    TrackingResult,
    TrackingStats,
    Correspondence,
    Uninitialized,
    Tracking,
)

__all__ = [
    "ShiTomasiDetector",
    "detect_features",
    "PyramidalLKEstimator",
    "FeatureTracker",
    "TrackingResult",
    "TrackingStats",
    "Correspondence",
    "Uninitialized",
    "Tracking",
]
