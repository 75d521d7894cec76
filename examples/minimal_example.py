#!/usr/bin/env python3
"""
Minimal Example: flowtrack API Usage
====================================

Tracks corners through a video file (or camera 0) and writes a preview
video plus a CSV of per-point correspondences.

Equivalent to:
    flowtrack track input.mp4 -out previewtrack -out csv
"""

import sys

from flowtrack import FeatureTracker, TrackerConfig, to_gray
from flowtrack.core.video import VideoReader
from flowtrack.outputs import OutputManager


source = sys.argv[1] if len(sys.argv) > 1 else "input.mp4"

# Same parameters as the defaults, spelled out
config = TrackerConfig(
    max_features=300,
    quality_level=0.005,
    min_distance=3.0,
    reseed_cadence=300,
)
tracker = FeatureTracker(config)

with VideoReader(source, last_frame=600) as reader:
    outputs = OutputManager(source)
    outputs.add_output("previewtrack")
    outputs.add_output("csv=validonly=true")
    outputs.initialize_all(reader.properties.to_dict())

    with outputs:
        for frame_num, frame in reader:
            result = tracker.update(to_gray(frame))
            outputs.process_frame(frame_num, frame, result)

            # Motion vectors, only for points that were followed successfully
            moving = [
                (prev, curr) for prev, curr in result.flow_pairs()
                if abs(curr[0] - prev[0]) + abs(curr[1] - prev[1]) > 1.0
            ]
            if result.reseeded:
                print(f"Frame {frame_num}: re-seeded {len(result)} points")
            elif moving:
                print(f"Frame {frame_num}: {len(moving)} points moving")

print("Outputs:", outputs.get_output_paths())
