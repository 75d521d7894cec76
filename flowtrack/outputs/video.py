"""
Video output and drawing of tracking results.

Only points that were followed successfully are drawn: a red outline
where the point was, a filled blue dot where it is, and a green line
joining the two. Lost points are left out.
"""

import cv2
import numpy as np

from flowtrack.outputs.base import BaseOutput, OutputSpec
from flowtrack.tracking.tracker import TrackingResult

# BGR
PREVIOUS_COLOR = (0, 0, 255)
CURRENT_COLOR = (255, 0, 0)
FLOW_COLOR = (0, 255, 0)


def _to_pixel(point) -> tuple[int, int] | None:
    """Round a point to pixel coordinates, or None if it is not finite."""
    x, y = float(point[0]), float(point[1])
    if not (np.isfinite(x) and np.isfinite(y)):
        return None
    return int(round(x)), int(round(y))


def draw_correspondences(
    image: np.ndarray,
    result: TrackingResult,
    radius: int = 3,
    draw_lines: bool = True,
    alpha: float = 0.5,
) -> np.ndarray:
    """
    Draw a tracking result over a frame.

    Args:
        image: BGR or grayscale frame (not modified)
        result: Tracking result to draw
        radius: Point marker radius in pixels
        draw_lines: Draw previous-to-current lines for valid points
        alpha: Opacity of the overlay

    Returns:
        A new BGR image with the overlay blended in
    """
    if image.ndim == 2:
        vis = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        vis = image.copy()

    overlay = vis.copy()
    pairs = result.flow_pairs()

    # Lost points have no meaningful position, so only tracked ones are drawn.
    # Re-seed frames have no aligned pairs and show only the new detections.
    for point, _ in pairs:
        pixel = _to_pixel(point)
        if pixel is not None:
            cv2.circle(overlay, pixel, radius, PREVIOUS_COLOR, 1)

    for point in result.current_points[result.status]:
        pixel = _to_pixel(point)
        if pixel is not None:
            cv2.circle(overlay, pixel, radius, CURRENT_COLOR, -1)

    if draw_lines:
        for prev, curr in pairs:
            start, end = _to_pixel(prev), _to_pixel(curr)
            if start is not None and end is not None:
                cv2.line(overlay, start, end, FLOW_COLOR, 1)

    return cv2.addWeighted(overlay, alpha, vis, 1 - alpha, 0)


class PreviewTrackOutput(BaseOutput):
    """
    Outputs video with tracked points and flow lines overlaid.

    Options:
        filename: Output filename (default: input_preview.mp4)
        radius: Point marker radius (default: 3)
        lines: 'on' or 'off' (default: on)
    """

    def __init__(self, spec: OutputSpec, input_name: str):
        super().__init__(spec, input_name)
        self.writer: cv2.VideoWriter | None = None
        self.radius = spec.get_int('radius', 3)
        if self.radius < 1:
            raise ValueError(f"Invalid previewtrack radius: {self.radius}")

        lines = spec.get('lines', 'on').lower()
        if lines not in ('on', 'off'):
            raise ValueError(
                f"Invalid previewtrack lines: {lines}. Must be 'on' or 'off'."
            )
        self.draw_lines = lines == 'on'

    def _get_default_suffix(self) -> str:
        return "_preview"

    def _get_default_extension(self) -> str:
        return "mp4"

    def initialize(self, video_props: dict) -> None:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        self.writer = cv2.VideoWriter(
            str(self.output_path),
            fourcc,
            video_props['fps'],
            (video_props['width'], video_props['height'])
        )

    def process_frame(
        self,
        frame_num: int,
        frame: np.ndarray,
        result: TrackingResult,
    ) -> None:
        if self.writer is None:
            return

        vis = draw_correspondences(
            frame, result, radius=self.radius, draw_lines=self.draw_lines
        )
        cv2.putText(
            vis, f"Frame: {frame_num}",
            (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2
        )
        self.writer.write(vis)

    def finalize(self) -> None:
        if self.writer:
            self.writer.release()
            self.writer = None
