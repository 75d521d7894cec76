"""
Frame sample helpers.

The tracking core works on 8-bit single-channel images. These helpers
validate buffers handed to the detector and estimator, and convert raw
color frames for callers that read from a camera or video file.
"""

import cv2
import numpy as np

from flowtrack.core.errors import InvalidFrameError


def ensure_gray(image: np.ndarray, name: str = "image") -> np.ndarray:
    """
    Validate a grayscale frame sample.

    A trailing singleton channel axis (HxWx1) is squeezed away.

    Args:
        image: Candidate frame sample
        name: Name used in error messages

    Returns:
        The image as a 2-D uint8 array

    Raises:
        InvalidFrameError: If the image is not an 8-bit single-channel array
            with non-zero dimensions
    """
    if not isinstance(image, np.ndarray):
        raise InvalidFrameError(
            f"{name} must be a numpy array, got {type(image).__name__}"
        )

    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]

    if image.ndim != 2:
        raise InvalidFrameError(
            f"{name} must be single-channel, got shape {image.shape}"
        )

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidFrameError(f"{name} has zero dimensions: {image.shape}")

    if image.dtype != np.uint8:
        raise InvalidFrameError(f"{name} must be uint8, got {image.dtype}")

    return image


def ensure_same_size(prev_image: np.ndarray, curr_image: np.ndarray) -> None:
    """Raise InvalidFrameError if two frame samples differ in size."""
    if prev_image.shape != curr_image.shape:
        raise InvalidFrameError(
            f"Frame size changed: previous {prev_image.shape}, "
            f"current {curr_image.shape}"
        )


def to_gray(frame: np.ndarray) -> np.ndarray:
    """
    Convert a raw BGR or BGRA frame to a grayscale frame sample.

    Frames that are already single-channel are validated and returned.
    """
    if not isinstance(frame, np.ndarray):
        raise InvalidFrameError(
            f"frame must be a numpy array, got {type(frame).__name__}"
        )

    if frame.ndim == 3 and frame.shape[2] == 3:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)

    return ensure_gray(frame, "frame")


def as_points(points, name: str = "points") -> np.ndarray:
    """
    Normalize a point sequence to an (N, 2) float32 array.

    Accepts lists of (x, y) pairs and OpenCV-style (N, 1, 2) arrays.
    """
    arr = np.asarray(points, dtype=np.float32)
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float32)
    if arr.ndim == 0 or arr.shape[-1] != 2:
        raise ValueError(f"{name} must have shape (N, 2), got {arr.shape}")
    return arr.reshape(-1, 2)
