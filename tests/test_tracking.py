"""
Tests for detection, flow estimation and the tracker state machine.
"""

import cv2
import numpy as np
import pytest


def make_textured_image(width=160, height=120, seed=0):
    """Grayscale image of blurred rectangles, rich in corners."""
    rng = np.random.default_rng(seed)
    image = np.zeros((height, width), dtype=np.uint8)
    for _ in range(12):
        x = int(rng.integers(10, width - 30))
        y = int(rng.integers(10, height - 30))
        w = int(rng.integers(8, 20))
        h = int(rng.integers(8, 20))
        value = int(rng.integers(80, 255))
        cv2.rectangle(image, (x, y), (x + w, y + h), value, -1)
    return cv2.GaussianBlur(image, (5, 5), 1.0)


def shift_image(image, dx, dy):
    """Translate an image by whole pixels, padding with black."""
    matrix = np.float32([[1, 0, dx], [0, 1, dy]])
    h, w = image.shape
    return cv2.warpAffine(image, matrix, (w, h))


def blank_frame(width=64, height=48):
    return np.zeros((height, width), dtype=np.uint8)


class FixedDetector:
    """Detector returning the same points on every call."""

    def __init__(self, points):
        self.points = np.asarray(points, dtype=np.float32).reshape(-1, 2)
        self.calls = 0

    def detect(self, image, mask=None):
        self.calls += 1
        return self.points.copy()


class IdentityEstimator:
    """Estimator that leaves points in place, optionally losing some."""

    def __init__(self, invalid=()):
        self.invalid = set(invalid)
        self.calls = 0
        self.inputs = []

    def estimate(self, prev_image, curr_image, prev_points):
        from flowtrack.core.base import FlowEstimate

        self.calls += 1
        self.inputs.append(np.array(prev_points))
        status = np.array(
            [i not in self.invalid for i in range(len(prev_points))], dtype=bool
        )
        return FlowEstimate(
            points=np.array(prev_points, dtype=np.float32),
            status=status,
            errors=np.zeros(len(prev_points), dtype=np.float32),
        )


class LostAsNaNEstimator(IdentityEstimator):
    """Estimator that reports lost points at NaN, as some LK backends do."""

    def estimate(self, prev_image, curr_image, prev_points):
        from flowtrack.core.base import FlowEstimate

        estimate = super().estimate(prev_image, curr_image, prev_points)
        points = estimate.points.copy()
        points[~estimate.status] = np.nan
        return FlowEstimate(points=points, status=estimate.status, errors=estimate.errors)


class ShortStatusEstimator(IdentityEstimator):
    """Estimator whose status array is one entry short."""

    def estimate(self, prev_image, curr_image, prev_points):
        from flowtrack.core.base import FlowEstimate

        estimate = super().estimate(prev_image, curr_image, prev_points)
        return FlowEstimate(
            points=estimate.points,
            status=estimate.status[:-1],
            errors=estimate.errors,
        )


class ShortErrorsEstimator(IdentityEstimator):
    """Estimator whose error array is one entry short."""

    def estimate(self, prev_image, curr_image, prev_points):
        from flowtrack.core.base import FlowEstimate

        estimate = super().estimate(prev_image, curr_image, prev_points)
        return FlowEstimate(
            points=estimate.points,
            status=estimate.status,
            errors=estimate.errors[:-1],
        )


def make_tracker(cadence=4, points=((10, 10), (20, 20)), invalid=()):
    from flowtrack.core.config import TrackerConfig
    from flowtrack.tracking import FeatureTracker

    detector = FixedDetector(points)
    estimator = IdentityEstimator(invalid)
    tracker = FeatureTracker(
        TrackerConfig(reseed_cadence=cadence),
        detector=detector,
        estimator=estimator,
    )
    return tracker, detector, estimator


class TestDetectFeatures:
    """Tests for Shi-Tomasi corner detection."""

    def test_finds_corners(self):
        """Test that a textured image yields points."""
        from flowtrack.tracking import detect_features

        points = detect_features(make_textured_image(), 50, 0.01, 5.0)
        assert points.ndim == 2
        assert points.shape[1] == 2
        assert 0 < len(points) <= 50
        assert points.dtype == np.float32

    def test_respects_max_count(self):
        """Test that no more than max_count points are returned."""
        from flowtrack.tracking import detect_features

        points = detect_features(make_textured_image(), 5, 0.01, 1.0)
        assert len(points) <= 5

    def test_min_distance(self):
        """Test that returned points are at least min_distance apart."""
        from flowtrack.tracking import detect_features

        points = detect_features(make_textured_image(), 100, 0.01, 10.0)
        for i in range(len(points)):
            for j in range(i + 1, len(points)):
                assert np.linalg.norm(points[i] - points[j]) >= 10.0 - 1e-3

    def test_deterministic(self):
        """Test that detecting twice gives the same ordered points."""
        from flowtrack.tracking import detect_features

        image = make_textured_image()
        first = detect_features(image, 30, 0.005, 3.0)
        second = detect_features(image, 30, 0.005, 3.0)
        np.testing.assert_array_equal(first, second)

    def test_uniform_image_is_empty(self):
        """Test that an image without corners gives an empty array."""
        from flowtrack.tracking import detect_features

        points = detect_features(np.full((40, 40), 128, np.uint8), 10, 0.01, 3.0)
        assert points.shape == (0, 2)

    def test_mask_restricts_region(self):
        """Test that detection only happens inside the mask."""
        from flowtrack.tracking import detect_features

        image = make_textured_image()
        mask = np.zeros_like(image)
        mask[:, :80] = 255
        points = detect_features(image, 100, 0.01, 3.0, mask=mask)
        assert np.all(points[:, 0] < 80)

    def test_color_image_rejected(self):
        """Test that a 3-channel image is an invalid-input failure."""
        from flowtrack.core.errors import InvalidFrameError
        from flowtrack.tracking import detect_features

        with pytest.raises(InvalidFrameError):
            detect_features(np.zeros((20, 20, 3), np.uint8), 10, 0.01, 3.0)

    def test_empty_image_rejected(self):
        """Test that a zero-sized image is an invalid-input failure."""
        from flowtrack.core.errors import InvalidFrameError
        from flowtrack.tracking import detect_features

        with pytest.raises(InvalidFrameError):
            detect_features(np.zeros((0, 20), np.uint8), 10, 0.01, 3.0)

    @pytest.mark.parametrize("kwargs", [
        {"max_count": 0},
        {"quality_level": 0.0},
        {"quality_level": 1.5},
        {"min_distance": -1.0},
    ])
    def test_invalid_parameters(self, kwargs):
        """Test that out-of-range parameters raise ValueError."""
        from flowtrack.tracking import detect_features

        params = {"max_count": 10, "quality_level": 0.01, "min_distance": 3.0}
        params.update(kwargs)
        with pytest.raises(ValueError):
            detect_features(make_textured_image(), **params)

    def test_detector_from_config(self):
        """Test building a detector from a config."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.core.base import FeatureDetector
        from flowtrack.tracking import ShiTomasiDetector

        detector = ShiTomasiDetector.from_config(TrackerConfig(max_features=7))
        assert detector.max_count == 7
        assert isinstance(detector, FeatureDetector)
        assert len(detector.detect(make_textured_image())) <= 7


class TestPyramidalLKEstimator:
    """Tests for pyramidal Lucas-Kanade estimation."""

    def test_follows_translation(self):
        """Test that points follow a small translation."""
        from flowtrack.tracking import PyramidalLKEstimator, detect_features

        prev = make_textured_image()
        curr = shift_image(prev, 2, 1)
        points = detect_features(prev, 40, 0.01, 5.0)
        points = points[
            (points[:, 0] > 10) & (points[:, 0] < 140) &
            (points[:, 1] > 10) & (points[:, 1] < 100)
        ]
        assert len(points) > 0

        estimate = PyramidalLKEstimator().estimate(prev, curr, points)

        assert len(estimate) == len(points)
        assert estimate.status.dtype == bool
        assert np.count_nonzero(estimate.status) >= len(points) // 2

        moved = estimate.points[estimate.status] - points[estimate.status]
        np.testing.assert_allclose(np.median(moved, axis=0), [2.0, 1.0], atol=0.5)

    def test_length_preserved_with_lost_points(self):
        """Test that output stays aligned with input even when points fail."""
        from flowtrack.tracking import PyramidalLKEstimator

        prev = make_textured_image()
        curr = shift_image(prev, 2, 1)
        # Last point lies outside the image
        points = np.array([[50, 50], [2, 118], [-30, -30]], dtype=np.float32)

        estimate = PyramidalLKEstimator().estimate(prev, curr, points)

        assert len(estimate.points) == 3
        assert len(estimate.status) == 3
        assert len(estimate.errors) == 3
        assert not estimate.status[2]

    def test_accepts_opencv_point_layout(self):
        """Test that Nx1x2 input is accepted."""
        from flowtrack.tracking import PyramidalLKEstimator

        image = make_textured_image()
        points = np.array([[[40, 40]], [[60, 30]]], dtype=np.float32)
        estimate = PyramidalLKEstimator().estimate(image, image, points)
        assert estimate.points.shape == (2, 2)

    def test_empty_points(self):
        """Test that no points gives an empty estimate."""
        from flowtrack.tracking import PyramidalLKEstimator

        image = make_textured_image()
        estimate = PyramidalLKEstimator().estimate(
            image, image, np.empty((0, 2), np.float32)
        )
        assert len(estimate) == 0
        assert estimate.status.shape == (0,)

    def test_size_mismatch(self):
        """Test that differently sized frames are rejected."""
        from flowtrack.core.errors import InvalidFrameError
        from flowtrack.tracking import PyramidalLKEstimator

        with pytest.raises(InvalidFrameError):
            PyramidalLKEstimator().estimate(
                make_textured_image(160, 120),
                make_textured_image(80, 60),
                np.array([[10, 10]], np.float32),
            )

    def test_bad_points(self):
        """Test that a malformed point array is rejected."""
        from flowtrack.tracking import PyramidalLKEstimator

        image = make_textured_image()
        with pytest.raises(ValueError):
            PyramidalLKEstimator().estimate(
                image, image, np.array([[1, 2, 3]], np.float32)
            )

    def test_forward_backward_keeps_good_tracks(self):
        """Test that forward-backward checking keeps consistent tracks."""
        from flowtrack.tracking import PyramidalLKEstimator, detect_features

        prev = make_textured_image()
        curr = shift_image(prev, 1, 1)
        points = detect_features(prev, 20, 0.05, 8.0)
        points = points[
            (points[:, 0] > 10) & (points[:, 0] < 140) &
            (points[:, 1] > 10) & (points[:, 1] < 100)
        ]

        estimator = PyramidalLKEstimator(fb_threshold=1.0)
        estimate = estimator.estimate(prev, curr, points)
        assert len(estimate) == len(points)
        assert np.any(estimate.status)

    def test_from_config(self):
        """Test building an estimator from a config."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.core.base import FlowEstimator
        from flowtrack.tracking import PyramidalLKEstimator

        estimator = PyramidalLKEstimator.from_config(
            TrackerConfig(win_size=15, max_level=2, fb_threshold=0.5)
        )
        assert estimator.lk_params["winSize"] == (15, 15)
        assert estimator.lk_params["maxLevel"] == 2
        assert estimator.fb_threshold == 0.5
        assert isinstance(estimator, FlowEstimator)


class TestFeatureTracker:
    """Tests for the tracker state machine."""

    def test_initial_state(self):
        """Test a freshly built tracker."""
        from flowtrack.tracking import Uninitialized

        tracker, _, _ = make_tracker()
        assert isinstance(tracker.phase, Uninitialized)
        assert tracker.is_initialized is False
        assert tracker.frame_count == 0
        assert len(tracker.current_points) == 0

    def test_first_frame_is_empty(self):
        """Test that the first frame produces no output and no calls."""
        from flowtrack.tracking import Tracking

        tracker, detector, estimator = make_tracker()
        result = tracker.update(blank_frame())

        assert result.is_empty
        assert len(result.previous_points) == 0
        assert detector.calls == 0
        assert estimator.calls == 0
        assert isinstance(tracker.phase, Tracking)
        assert tracker.frame_count == 1

    def test_cadence_scenario(self):
        """Test re-seeding on ticks 1 and 4 with a cadence of 4."""
        tracker, detector, estimator = make_tracker(cadence=4)

        results = [tracker.update(blank_frame()) for _ in range(6)]

        assert results[0].is_empty
        assert [r.reseeded for r in results] == [False, True, False, False, True, False]
        assert detector.calls == 2
        assert estimator.calls == 3
        for result in results[1:]:
            assert len(result) == 2
            assert list(result.status) == [True, True]
        np.testing.assert_array_equal(
            results[2].current_points, [[10, 10], [20, 20]]
        )

    def test_reseed_iff_cadence_or_empty(self):
        """Test the re-seed decision over a long run."""
        tracker, _, _ = make_tracker(cadence=5)
        tracker.update(blank_frame())

        for _ in range(20):
            counter = tracker.frame_count
            was_empty = tracker.last_result.is_empty
            expected = was_empty or counter % 5 == 0
            assert tracker.should_reseed() == expected
            assert tracker.update(blank_frame()).reseeded == expected

    def test_counter_increments_once_per_frame(self):
        """Test that each processed frame advances the counter by one."""
        tracker, _, _ = make_tracker()
        for expected in range(1, 8):
            result = tracker.update(blank_frame())
            assert result.frame == expected - 1
            assert tracker.frame_count == expected

    def test_estimation_preserves_length(self):
        """Test that carried-forward results match their inputs."""
        tracker, _, estimator = make_tracker(
            cadence=100, points=[(5, 5), (10, 12), (30, 20)]
        )
        tracker.update(blank_frame())
        seeded = tracker.update(blank_frame())

        result = tracker.update(blank_frame())

        assert not result.reseeded
        assert len(result.current_points) == len(result.previous_points) == 3
        assert len(result.status) == len(result.errors) == 3
        np.testing.assert_array_equal(result.previous_points, seeded.current_points)
        np.testing.assert_array_equal(estimator.inputs[0], seeded.current_points)

    def test_previous_points_after_reseed(self):
        """Test that a re-seed keeps the prior current points as previous."""
        tracker, detector, _ = make_tracker(cadence=3)
        tracker.update(blank_frame())
        tracker.update(blank_frame())
        before = tracker.update(blank_frame())

        detector.points = np.array([[1, 1], [2, 2], [3, 3]], np.float32)
        result = tracker.update(blank_frame())

        assert result.reseeded
        assert len(result.current_points) == 3
        np.testing.assert_array_equal(result.previous_points, before.current_points)
        assert result.is_aligned is False
        assert result.flow_pairs() == []

    def test_invalid_point_gated(self):
        """Test that a lost point stays in the output without a flow line."""
        tracker, _, _ = make_tracker(cadence=100, invalid={1})
        tracker.update(blank_frame())
        tracker.update(blank_frame())

        result = tracker.update(blank_frame())

        assert len(result.current_points) == 2
        assert list(result.status) == [True, False]
        pairs = result.flow_pairs()
        assert pairs == [((10.0, 10.0), (10.0, 10.0))]

        records = result.correspondences()
        assert [c.valid for c in records] == [True, False]
        assert records[1].previous == (20.0, 20.0)

    def test_empty_detection_skips_estimator(self):
        """Test that no estimator call happens while nothing is tracked."""
        tracker, detector, estimator = make_tracker(cadence=10, points=[])

        for _ in range(6):
            result = tracker.update(blank_frame())
            assert result.is_empty
            assert len(result.status) == 0

        assert estimator.calls == 0
        # Every tick after the first re-detects because the set is empty
        assert detector.calls == 5

    def test_missing_frame_reuses_state(self):
        """Test that a tick without a frame changes nothing."""
        tracker, detector, estimator = make_tracker()
        tracker.update(blank_frame())
        seeded = tracker.update(blank_frame())

        result = tracker.update(None)

        assert result is seeded
        assert tracker.frame_count == 2
        assert detector.calls == 1
        assert estimator.calls == 0

    def test_lost_point_at_nan_is_drawable(self):
        """Test that a NaN position for a lost point reaches drawing safely."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.outputs import draw_correspondences
        from flowtrack.tracking import FeatureTracker

        tracker = FeatureTracker(
            TrackerConfig(reseed_cadence=4),
            detector=FixedDetector([(10, 10), (20, 20)]),
            estimator=LostAsNaNEstimator(invalid=[1]),
        )
        for _ in range(3):
            result = tracker.update(blank_frame())

        assert not result.reseeded
        assert np.isnan(result.current_points[1]).all()
        assert result.flow_pairs() == [((10.0, 10.0), (10.0, 10.0))]

        vis = draw_correspondences(blank_frame(), result)
        assert vis.shape == (48, 64, 3)
        assert not vis[16:25, 16:25].any()

    @pytest.mark.parametrize("estimator_class", [ShortStatusEstimator, ShortErrorsEstimator])
    def test_estimator_length_mismatch(self, estimator_class):
        """Test that misaligned estimator arrays are rejected."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.tracking import FeatureTracker

        tracker = FeatureTracker(
            TrackerConfig(reseed_cadence=4),
            detector=FixedDetector([(10, 10), (20, 20)]),
            estimator=estimator_class(),
        )
        tracker.update(blank_frame())
        tracker.update(blank_frame())
        before = tracker.last_result

        with pytest.raises(RuntimeError, match="for 2 inputs"):
            tracker.update(blank_frame())
        assert tracker.frame_count == 2
        assert tracker.last_result is before

    def test_frame_size_change_rejected(self):
        """Test that a frame of a different size fails fast."""
        from flowtrack.core.errors import InvalidFrameError

        tracker, _, _ = make_tracker()
        tracker.update(blank_frame(64, 48))
        with pytest.raises(InvalidFrameError):
            tracker.update(blank_frame(32, 24))
        assert tracker.frame_count == 1

    def test_color_frame_rejected(self):
        """Test that a color frame is an invalid-input failure."""
        from flowtrack.core.errors import InvalidFrameError

        tracker, _, _ = make_tracker()
        with pytest.raises(InvalidFrameError):
            tracker.update(np.zeros((48, 64, 3), np.uint8))

    def test_reset(self):
        """Test that reset returns to the uninitialized phase."""
        from flowtrack.tracking import Uninitialized

        tracker, _, _ = make_tracker()
        for _ in range(3):
            tracker.update(blank_frame())

        tracker.reset()

        assert isinstance(tracker.phase, Uninitialized)
        assert tracker.frame_count == 0
        assert tracker.update(blank_frame()).is_empty

    def test_state_copies(self):
        """Test that exposed point arrays are copies."""
        tracker, _, _ = make_tracker()
        tracker.update(blank_frame())
        tracker.update(blank_frame())

        points = tracker.current_points
        points[:] = -1
        assert np.all(tracker.current_points >= 0)

    def test_rejects_non_protocol_collaborators(self):
        """Test that objects without detect()/estimate() are refused."""
        from flowtrack.tracking import FeatureTracker

        with pytest.raises(TypeError):
            FeatureTracker(detector=object())
        with pytest.raises(TypeError):
            FeatureTracker(estimator=object())

    def test_invalid_config(self):
        """Test that an invalid config is refused at construction."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.tracking import FeatureTracker

        with pytest.raises(ValueError):
            FeatureTracker(TrackerConfig(reseed_cadence=0))

    def test_stats(self):
        """Test per-update statistics."""
        tracker, _, _ = make_tracker(cadence=100, invalid={0})
        tracker.update(blank_frame())
        seeded = tracker.update(blank_frame())
        tracked = tracker.update(blank_frame())

        assert seeded.stats.added == 2
        assert seeded.stats.total == 2
        assert tracked.stats.tracked == 1
        assert tracked.stats.lost == 1
        assert tracked.stats.to_dict()["frame"] == 2

    def test_real_pipeline_on_moving_image(self):
        """Test the OpenCV-backed tracker on a translating scene."""
        from flowtrack.core.config import TrackerConfig
        from flowtrack.tracking import FeatureTracker

        base = make_textured_image()
        tracker = FeatureTracker(TrackerConfig(max_features=50, reseed_cadence=300))

        first = tracker.update(base)
        seeded = tracker.update(shift_image(base, 1, 0))
        tracked = tracker.update(shift_image(base, 2, 0))

        assert first.is_empty
        assert seeded.reseeded
        assert len(seeded) > 0
        assert not tracked.reseeded
        assert len(tracked.current_points) == len(seeded.current_points)
        assert len(tracked.status) == len(tracked.current_points)
        assert len(tracked.flow_pairs()) > 0
