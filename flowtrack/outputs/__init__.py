"""
Output handlers module.

Presentation adapters that consume tracking results:
- PreviewTrackOutput: Video with points and flow lines overlaid
- CSVOutput: Per-point correspondences as CSV

Example:
    >>> from flowtrack.outputs import OutputManager
    >>> manager = OutputManager("input.mp4")
    >>> manager.add_output("previewtrack=filename=preview.mp4")
    >>> manager.add_output("csv=validonly=true")
"""

from flowtrack.outputs.base import OutputSpec, BaseOutput
from flowtrack.outputs.video import PreviewTrackOutput, draw_correspondences
from flowtrack.outputs.data import CSVOutput
from flowtrack.outputs.manager import OutputManager, OUTPUT_TYPES

__all__ = [
    "OutputSpec",
    "BaseOutput",
    "PreviewTrackOutput",
    "draw_correspondences",
    "CSVOutput",
    "OutputManager",
    "OUTPUT_TYPES",
]
