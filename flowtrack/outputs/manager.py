"""
Fan-out of tracking results to the outputs requested on the command line.
"""

from pathlib import Path
from typing import Type

import numpy as np

from flowtrack.outputs.base import BaseOutput, OutputSpec
from flowtrack.outputs.data import CSVOutput
from flowtrack.outputs.video import PreviewTrackOutput
from flowtrack.tracking.tracker import TrackingResult


# Output type names accepted in -out specifications
OUTPUT_TYPES: dict[str, Type[BaseOutput]] = {
    'previewtrack': PreviewTrackOutput,
    'preview': PreviewTrackOutput,
    'csv': CSVOutput,
}


class OutputManager:
    """
    Holds the outputs for one tracking run and feeds each of them every
    frame together with its tracking result.

    Example:
        >>> with OutputManager("input.mp4") as manager:
        ...     manager.add_output("previewtrack=lines=off")
        ...     manager.add_output("csv=validonly=true")
        ...     manager.initialize_all(props.to_dict())
        ...     for frame_num, frame in reader:
        ...         manager.process_frame(frame_num, frame, tracker.update(to_gray(frame)))
    """

    def __init__(self, input_name: str):
        self.input_name = input_name
        self.outputs: list[BaseOutput] = []

    def add_output(self, spec_string: str) -> BaseOutput:
        """
        Create an output from a specification such as ``csv=validonly=true``.

        Raises:
            ValueError: If the output type is unknown or an option is invalid
        """
        spec = OutputSpec(spec_string)
        output_class = OUTPUT_TYPES.get(spec.output_type)
        if output_class is None:
            raise ValueError(
                f"Unknown output type: {spec.output_type}. "
                f"Available: {sorted(OUTPUT_TYPES)}"
            )

        output = output_class(spec, self.input_name)
        self.outputs.append(output)
        return output

    def initialize_all(self, video_props: dict) -> None:
        for output in self.outputs:
            output.initialize(video_props)

    def process_frame(
        self,
        frame_num: int,
        frame: np.ndarray,
        result: TrackingResult,
    ) -> None:
        for output in self.outputs:
            output.process_frame(frame_num, frame, result)

    def finalize_all(self) -> None:
        for output in self.outputs:
            output.finalize()

    def get_output_paths(self) -> list[Path]:
        return [output.get_output_path() for output in self.outputs]

    def __len__(self) -> int:
        return len(self.outputs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize_all()
        return False
