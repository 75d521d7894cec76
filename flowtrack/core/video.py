"""
Video input for the flowtrack command line.

Frames come either from a video file or from a live capture device
addressed by its index. Both are read through OpenCV's VideoCapture.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class VideoProperties:
    """Properties of a video source."""
    width: int
    height: int
    fps: float
    frame_count: int

    @classmethod
    def from_capture(cls, cap: cv2.VideoCapture) -> "VideoProperties":
        """Create VideoProperties from an OpenCV VideoCapture."""
        fps = cap.get(cv2.CAP_PROP_FPS)
        return cls(
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=fps if fps > 0 else 30.0,
            frame_count=max(int(cap.get(cv2.CAP_PROP_FRAME_COUNT)), 0),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for output handlers."""
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "frame_count": self.frame_count,
        }

    @property
    def is_live(self) -> bool:
        """True for sources without a known length, such as cameras."""
        return self.frame_count == 0


def parse_source(source: str | int | Path) -> str | int:
    """
    Interpret a source argument.

    Integers and all-digit strings select a capture device; anything
    else is a file path.
    """
    if isinstance(source, int):
        return source
    text = str(source)
    if text.isdigit():
        return int(text)
    return text


class VideoReader:
    """
    Frame reader with frame range support.

    Example:
        with VideoReader("input.mp4", first_frame=100, last_frame=500) as reader:
            for frame_num, frame in reader:
                process(frame)

        with VideoReader(0, capture_size=(640, 480)) as camera:
            for frame_num, frame in camera:
                process(frame)
    """

    def __init__(
        self,
        source: str | int | Path,
        first_frame: int = 1,
        last_frame: int | None = None,
        capture_size: tuple[int, int] | None = (640, 480),
        max_read_failures: int = 30,
    ):
        """
        Initialize the video reader.

        Args:
            source: Path to a video file, or a capture device index
            first_frame: First frame to read (1-indexed, files only)
            last_frame: Last frame to read (None = end of video / until stopped)
            capture_size: Requested (width, height) for capture devices
            max_read_failures: Consecutive failed reads before a capture
                device is treated as gone
        """
        self.source = parse_source(source)
        self.first_frame = first_frame
        self.last_frame = last_frame
        self.capture_size = capture_size
        self.max_read_failures = max(1, max_read_failures)

        self._cap: cv2.VideoCapture | None = None
        self._props: VideoProperties | None = None

    @property
    def is_device(self) -> bool:
        """True when reading from a capture device."""
        return isinstance(self.source, int)

    def open(self) -> "VideoReader":
        """Open the video source."""
        if self.is_device:
            self._cap = cv2.VideoCapture(self.source)
            if self.capture_size is not None:
                width, height = self.capture_size
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        else:
            path = Path(self.source)
            if not path.exists():
                raise FileNotFoundError(f"Video file not found: {path}")
            self._cap = cv2.VideoCapture(str(path))

        if not self._cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {self.source}")

        self._props = VideoProperties.from_capture(self._cap)

        if self.is_device:
            self._props.frame_count = 0
        else:
            count = self._props.frame_count
            if count and (self.last_frame is None or self.last_frame > count):
                self.last_frame = count
            # Seek to first frame (convert to 0-indexed)
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, self.first_frame - 1)

        return self

    def close(self) -> None:
        """Release the video source."""
        if self._cap:
            self._cap.release()
            self._cap = None

    @property
    def properties(self) -> VideoProperties:
        """Get video properties."""
        if self._props is None:
            raise RuntimeError("Video not opened. Call open() first.")
        return self._props

    def read_frame(self) -> tuple[bool, np.ndarray | None]:
        """Read the next frame."""
        if self._cap is None:
            raise RuntimeError("Video not opened. Call open() first.")
        ret, frame = self._cap.read()
        return ret, frame if ret else None

    def __iter__(self) -> Iterator[tuple[int, np.ndarray]]:
        """
        Iterate over frames in the range.

        A file ends at its first failed read. A capture device skips
        dropped frames and only stops after ``max_read_failures`` failed
        reads in a row.
        """
        if self._cap is None:
            self.open()

        current_frame = 1 if self.is_device else self.first_frame
        failures = 0
        while self.last_frame is None or current_frame <= self.last_frame:
            ret, frame = self.read_frame()
            if not ret:
                if not self.is_device:
                    break
                failures += 1
                if failures >= self.max_read_failures:
                    logger.warning(
                        "Device %s: %d reads failed in a row, stopping",
                        self.source, failures,
                    )
                    break
                logger.debug("Device %s: dropped frame", self.source)
                continue
            failures = 0
            yield current_frame, frame
            current_frame += 1

    def __enter__(self) -> "VideoReader":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
