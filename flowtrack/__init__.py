"""
flowtrack - Sparse optical flow feature tracking
================================================

Follows corners through a video stream with pyramidal Lucas-Kanade
optical flow, re-detecting the whole point set on a fixed cadence.

Main modules:
- flowtrack.core: Frame validation, protocols, configuration, video input
- flowtrack.tracking: Corner detection, flow estimation and the tracker
- flowtrack.outputs: Preview video and CSV output handlers

Quick start:
    >>> from flowtrack import FeatureTracker, TrackerConfig
    >>> tracker = FeatureTracker(TrackerConfig(max_features=300))
    >>> result = tracker.update(gray_frame)
    >>> for prev, curr in result.flow_pairs():
    ...     print(prev, "->", curr)
"""

__version__ = "0.1.0"

from flowtrack.core import TrackerConfig, InvalidFrameError, to_gray
from flowtrack.tracking import FeatureTracker, TrackingResult
from flowtrack.outputs import OutputManager, OutputSpec

__all__ = [
    "__version__",
    "TrackerConfig",
    "InvalidFrameError",
    "to_gray",
    "FeatureTracker",
    "TrackingResult",
    "OutputManager",
    "OutputSpec",
]
