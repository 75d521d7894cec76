"""
flowtrack Command Line Interface

Usage:
    flowtrack <command> [options]

Commands:
    track         Track features in a video file or live camera
    init-config   Write a configuration file with default parameters

Examples:
    flowtrack track input.mp4 -out previewtrack -out csv
    flowtrack track 0 --display
    flowtrack track input.mp4 -c flowtrack_config.json --reseed-cadence 100
    flowtrack init-config my_config.json
"""

import sys
import argparse
import logging

from flowtrack import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='flowtrack',
        description='Sparse optical flow feature tracking',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        '-V', '--version',
        action='version',
        version=f'flowtrack {__version__}',
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Track command
    track_parser = subparsers.add_parser(
        'track',
        help='Track features in a video file or live camera',
    )
    track_parser.add_argument(
        'input',
        help='Input video file, or camera index (e.g. 0)',
    )
    track_parser.add_argument(
        '-c', '--config',
        default=None,
        help='JSON configuration file',
    )
    track_parser.add_argument(
        '-out', '--output',
        action='append',
        dest='outputs',
        metavar='SPEC',
        help='Output specification (can be used multiple times)',
    )
    track_parser.add_argument(
        '-n', '--max-features',
        type=int,
        default=None,
        help='Maximum features per detection (default: 300)',
    )
    track_parser.add_argument(
        '--reseed-cadence',
        type=int,
        default=None,
        help='Frames between forced re-detection (default: 300)',
    )
    track_parser.add_argument(
        '-fs', '--first-frame',
        type=int,
        default=1,
        help='First frame to process (default: 1)',
    )
    track_parser.add_argument(
        '-fe', '--frame-end',
        type=int,
        default=None,
        help='Last frame to process (default: end of video)',
    )
    track_parser.add_argument(
        '--display',
        action='store_true',
        help='Show a live window with the tracking overlay (q or Esc quits)',
    )
    track_parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Suppress progress output',
    )
    track_parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging',
    )

    # Config command
    config_parser = subparsers.add_parser(
        'init-config',
        help='Write a configuration file with default parameters',
    )
    config_parser.add_argument(
        'path',
        nargs='?',
        default='flowtrack_config.json',
        help='Output path (default: flowtrack_config.json)',
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == 'track':
            return run_track(args)
        elif args.command == 'init-config':
            return run_init_config(args)
    except (FileNotFoundError, RuntimeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


def load_tracker_config(args):
    """Resolve the tracker config from file, environment and arguments."""
    from flowtrack.core.config import TrackerConfig, get_env_config, load_config

    config = load_config(args.config) if args.config else TrackerConfig()
    config = config.with_overrides(get_env_config())
    config = config.with_overrides({
        'max_features': args.max_features,
        'reseed_cadence': args.reseed_cadence,
    })
    return config.validate()


def run_track(args) -> int:
    """Run feature tracking command."""
    from flowtrack.core.frame import to_gray
    from flowtrack.core.video import VideoReader
    from flowtrack.outputs import OutputManager, draw_correspondences
    from flowtrack.tracking import FeatureTracker

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    config = load_tracker_config(args)
    tracker = FeatureTracker(config)

    output_manager = OutputManager(args.input)
    for spec in args.outputs or []:
        output_manager.add_output(spec)

    if not args.quiet:
        print(f"Tracking features in {args.input}")

    if args.display:
        import cv2

    with VideoReader(args.input, args.first_frame, args.frame_end) as reader:
        output_manager.initialize_all(reader.properties.to_dict())

        with output_manager:
            for frame_num, frame in reader:
                result = tracker.update(to_gray(frame))
                output_manager.process_frame(frame_num, frame, result)

                if not args.quiet:
                    stats = result.stats
                    print(
                        f"\rFrame {frame_num}: {stats.tracked} tracked, "
                        f"{stats.lost} lost, {stats.added} added",
                        end='',
                    )

                if args.display:
                    cv2.imshow('flowtrack', draw_correspondences(frame, result))
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord('q'), 27):
                        break

    if args.display:
        cv2.destroyAllWindows()

    if not args.quiet:
        print("\nDone!")
        for path in output_manager.get_output_paths():
            print(f"  wrote {path}")
    return 0


def run_init_config(args) -> int:
    """Write an example configuration file."""
    from flowtrack.core.config import create_example_config
    create_example_config(args.path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
