"""
Data output handlers.

CSVOutput writes one row per current point per frame.
"""

import csv

import numpy as np

from flowtrack.outputs.base import BaseOutput, OutputSpec
from flowtrack.tracking.tracker import TrackingResult

CSV_COLUMNS = [
    'frame', 'index', 'prev_x', 'prev_y', 'x', 'y', 'valid', 'error', 'reseeded'
]


class CSVOutput(BaseOutput):
    """
    Outputs tracking results as a CSV file.

    Columns: frame, index, prev_x, prev_y, x, y, valid, error, reseeded

    prev_x and prev_y are empty on re-seed frames, where new detections
    have no previous position.

    Options:
        filename: Output filename (default: input.csv)
        validonly: 'true' to skip lost points (default: false)
    """

    def __init__(self, spec: OutputSpec, input_name: str):
        super().__init__(spec, input_name)
        self.valid_only = spec.get_bool('validonly', False)
        self.file = None
        self.writer = None

    def _get_default_suffix(self) -> str:
        return ""

    def _get_default_extension(self) -> str:
        return "csv"

    def initialize(self, video_props: dict) -> None:
        self.file = open(self.output_path, 'w', newline='')
        self.writer = csv.writer(self.file)
        self.writer.writerow(CSV_COLUMNS)

    def process_frame(
        self,
        frame_num: int,
        frame: np.ndarray,
        result: TrackingResult,
    ) -> None:
        if self.writer is None:
            return

        for c in result.correspondences():
            if self.valid_only and not c.valid:
                continue
            prev_x, prev_y = c.previous if c.previous is not None else ("", "")
            self.writer.writerow([
                frame_num, c.index, prev_x, prev_y,
                c.current[0], c.current[1],
                int(c.valid), c.error, int(result.reseeded),
            ])

    def finalize(self) -> None:
        if self.file:
            self.file.close()
            self.file = None
            self.writer = None
