import numpy as np

from monoslam.config import SlamConfig
from monoslam.core.map import IdAllocator
from monoslam.system import Tracker, TrackingState
from monoslam.tests.synthetic import (
    FakeMatcher,
    essential_from_pose,
    make_camera,
    make_frame_pair,
    make_points,
    relative_motion,
)


class QueuedExtractor:
    """Hands out precomputed features in order, ignoring the image."""
    def __init__(self, features):
        self.features = list(features)

    def extract(self, image):
        if not self.features:
            raise ValueError("No features left")
        return self.features.pop(0)


def _tracker(config=None, allocator=None):
    camera = make_camera()
    first, second, second_pose, _ = make_frame_pair(camera, make_points(n=20))
    extractor = QueuedExtractor([
        (first.keypoints, first.descriptors),
        (second.keypoints, second.descriptors),
    ])
    matcher = FakeMatcher(essential_from_pose(relative_motion()))
    tracker = Tracker(camera, config=config, extractor=extractor, matcher=matcher, allocator=allocator)
    return tracker, second_pose


def test_tracker_initializes_and_adjusts():
    tracker, second_pose = _tracker()
    image = np.zeros((240, 320), dtype=np.uint8)

    assert np.array_equal(tracker.track(0.0, image), np.eye(4))
    assert tracker.state is TrackingState.NOT_INITIALIZED

    assert np.array_equal(tracker.track(0.1, image), np.eye(4))
    assert tracker.is_initialized()
    assert tracker.map.num_keyframes == 2
    assert tracker.map.num_map_points == 20

    report = tracker.last_report
    assert report is not None
    assert report.final_chi2 <= report.initial_chi2
    assert np.allclose(tracker.map.keyframe(1).pose, second_pose, atol=1e-6)
    tracker.map.validate()


def test_tracker_without_optimization():
    tracker, _ = _tracker(config=SlamConfig(optimize_after_init=False))
    image = np.zeros((240, 320), dtype=np.uint8)
    tracker.track(0.0, image)
    tracker.track(0.1, image)

    assert tracker.is_initialized()
    assert tracker.last_report is None


def test_extraction_failure_skips_frame():
    tracker, _ = _tracker()
    tracker.extractor = QueuedExtractor([])

    assert np.array_equal(tracker.track(0.0, np.zeros((4, 4), dtype=np.uint8)), np.eye(4))
    assert not tracker.is_initialized()
    assert tracker.initializer.first_frame is None


def test_optimize_before_initialization():
    tracker, _ = _tracker()
    assert tracker.optimize() is None


def test_tracker_uses_shared_allocator():
    allocator = IdAllocator(start=100)
    tracker, _ = _tracker(allocator=allocator)
    image = np.zeros((240, 320), dtype=np.uint8)
    tracker.track(0.0, image)
    tracker.track(0.1, image)

    assert sorted(tracker.map.keyframes) == [100, 101]
    assert min(tracker.map.map_points) == 102
    assert allocator.peek == 122
