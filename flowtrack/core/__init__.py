"""
Core module - Frame handling, protocols, configuration and video input.
"""

from flowtrack.core.base import FeatureDetector, FlowEstimator, FlowEstimate
from flowtrack.core.config import TrackerConfig, load_config, save_config
from flowtrack.core.errors import FlowTrackError, InvalidFrameError
from flowtrack.core.frame import ensure_gray, to_gray
from flowtrack.core.video import VideoReader, VideoProperties

__all__ = [
    "FeatureDetector",
    "FlowEstimator",
    "FlowEstimate",
    "TrackerConfig",
    "load_config",
    "save_config",
    "FlowTrackError",
    "InvalidFrameError",
    "ensure_gray",
    "to_gray",
    "VideoReader",
    "VideoProperties",
]
