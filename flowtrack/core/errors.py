"""
Exception types for the flowtrack package.

Invalid input (malformed frames, mismatched frame sizes) is a programmer
error and fails fast. Empty detections and lost points are ordinary data
and never raise.
"""


class FlowTrackError(Exception):
    """Base class for flowtrack errors."""


class InvalidFrameError(FlowTrackError, ValueError):
    """A frame sample has the wrong shape, channel count or dtype."""
