"""
Base classes for output handlers.

This module defines the OutputSpec parser and BaseOutput abstract class
that all output handlers must implement.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np

from flowtrack.tracking.tracker import TrackingResult


class OutputSpec:
    """
    An output type name followed by ``key=value`` options joined with ':'.

    Example:
        >>> spec = OutputSpec("previewtrack=filename=test.mp4:lines=off")
        >>> spec.output_type
        'previewtrack'
        >>> spec.get('lines')
        'off'

    A token without '=' is glued back onto the previous value, so Windows
    paths such as ``csv=filename=C:/out/pts.csv`` survive.
    """

    TRUE_VALUES = ('true', 'yes', '1', 'on')

    def __init__(self, spec_string: str):
        if not spec_string or not spec_string.strip():
            raise ValueError("Empty output specification")

        output_type, _, rest = spec_string.partition('=')
        self.output_type: str = output_type.strip().lower()
        self.options: dict[str, str] = self._parse_options(rest) if rest else {}

    @staticmethod
    def _parse_options(options_str: str) -> dict[str, str]:
        options: dict[str, str] = {}
        key = None
        for token in options_str.split(':'):
            if '=' in token or key is None:
                name, _, value = token.partition('=')
                key = name.strip().lower()
                options[key] = value.strip()
            else:
                options[key] += ':' + token
        return options

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key.lower(), default)

    def get_int(self, key: str, default: int = 0) -> int:
        """
        Get an option value as integer.

        Raises:
            ValueError: If the option is present but not an integer
        """
        val = self.get(key)
        if val is None:
            return default
        try:
            return int(val)
        except ValueError:
            raise ValueError(
                f"Option '{key}' of {self.output_type} output must be an "
                f"integer, got '{val}'"
            ) from None

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get(key)
        if val is None:
            return default
        return val.lower() in self.TRUE_VALUES

    def __repr__(self) -> str:
        return f"OutputSpec(type={self.output_type}, options={self.options})"


class BaseOutput(ABC):
    """
    Abstract base class for all output handlers.

    Subclasses must implement:
        - _get_default_suffix(): Default filename suffix
        - _get_default_extension(): Default file extension
        - initialize(): Set up the output (open files, etc.)
        - process_frame(): Consume one frame and its tracking result
        - finalize(): Clean up resources
    """

    def __init__(self, spec: OutputSpec, input_name: str):
        """
        Initialize the output handler.

        Args:
            spec: The parsed output specification
            input_name: Input video path or device name, used for default filenames
        """
        self.spec = spec
        self.input_path = Path(str(input_name))
        self.output_path = self._resolve_output_path()

    @abstractmethod
    def _get_default_suffix(self) -> str:
        """Return the default suffix to add to input filename."""

    @abstractmethod
    def _get_default_extension(self) -> str:
        """Return the default file extension."""

    def _resolve_output_path(self) -> Path:
        """Resolve the output path from spec or generate default."""
        filename = self.spec.get('filename')
        if filename:
            return Path(filename)

        stem = self.input_path.stem
        if stem.isdigit():
            stem = f"camera{stem}"
        return Path(f"{stem}{self._get_default_suffix()}.{self._get_default_extension()}")

    @abstractmethod
    def initialize(self, video_props: dict) -> None:
        """
        Initialize the output (open files, create writers, etc).

        Args:
            video_props: Dictionary with 'width', 'height', 'fps'
        """

    @abstractmethod
    def process_frame(
        self,
        frame_num: int,
        frame: np.ndarray,
        result: TrackingResult,
    ) -> None:
        """
        Process a single frame.

        Args:
            frame_num: Current frame number
            frame: The raw video frame
            result: Tracking result for this frame
        """

    @abstractmethod
    def finalize(self) -> None:
        """Finalize the output (close files, etc)."""

    def get_output_path(self) -> Path:
        """Return the resolved output path."""
        return self.output_path

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize()
        return False
