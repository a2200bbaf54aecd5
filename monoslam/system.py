import logging
from enum import Enum

import cv2
import numpy as np

from monoslam.backend.bundle_adjustment import BundleAdjustment
from monoslam.config import SlamConfig
from monoslam.core.frame import Frame
from monoslam.core.map import IdAllocator, Map
from monoslam.frontend.feature_extractor import FeatureExtractor
from monoslam.frontend.feature_matcher import FeatureMatcher
from monoslam.frontend.initializer import MapInitializer

logger = logging.getLogger(__name__)


class TrackingState(Enum):
    NOT_INITIALIZED = "not_initialized"
    INITIALIZED = "initialized"


class Tracker:
    """
    Main system class that feeds frames to the initializer and owns the
    live map.

    Frame-to-frame tracking after initialization is not implemented; once
    the map exists the tracker keeps reporting its last pose.
    """

    def __init__(self, camera, config=None, extractor=None, matcher=None,
                 bundle_adjustment=None, allocator=None):
        """
        Initialize the SLAM system.

        Args:
            camera: CameraModel of the sensor.
            config: SlamConfig (defaults if omitted).
            extractor: Object with .extract(image) -> (keypoints, descriptors).
            matcher: Object with .match(first, second) -> TwoViewMatch.
            bundle_adjustment: BundleAdjustment used after initialization.
            allocator: IdAllocator shared by everything this session creates.
        """
        self.camera = camera
        self.config = config if config is not None else SlamConfig()
        self.allocator = allocator if allocator is not None else IdAllocator()

        # Initialize components
        self.extractor = extractor if extractor is not None else FeatureExtractor.from_config(self.config)
        matcher = matcher if matcher is not None else FeatureMatcher.from_config(camera, self.config)
        self.bundle_adjustment = (bundle_adjustment if bundle_adjustment is not None
                                  else BundleAdjustment.from_config(self.config))
        self.initializer = MapInitializer(
            camera, matcher, self.allocator,
            max_depth=self.config.max_depth,
            min_inlier_ratio=self.config.min_inlier_ratio,
        )

        self.map = Map(self.allocator)
        self.state = TrackingState.NOT_INITIALIZED
        self.pose = np.eye(4)
        self.last_report = None

    def track(self, timestamp, image):
        """
        Process a new image.

        Args:
            timestamp: Capture time in seconds.
            image: Grayscale image.

        Returns:
            The current camera pose (4x4, world to camera).
        """
        try:
            keypoints, descriptors = self.extractor.extract(image)
        except (ValueError, cv2.error) as e:
            logger.warning("Skipping frame at t=%s: feature extraction failed: %s", timestamp, e)
            return self.pose
        return self.track_features(timestamp, image, keypoints, descriptors)

    def track_features(self, timestamp, image, keypoints, descriptors):
        """
        Process a frame whose features were extracted elsewhere.

        Returns:
            The current camera pose (4x4, world to camera).
        """
        frame = Frame(timestamp, image, keypoints, descriptors)

        if self.state is TrackingState.NOT_INITIALIZED:
            logger.debug("Initializing with frame t=%s", timestamp)
            if self.initializer.run(frame):
                self._adopt_map(self.initializer.map)
            return np.eye(4)

        return self.pose

    def _adopt_map(self, map_instance):
        self.map = map_instance
        self.state = TrackingState.INITIALIZED
        logger.info("Adopted initial map: %r", self.map)
        if self.config.optimize_after_init:
            self.optimize()

    def optimize(self):
        """
        Bundle-adjust the whole map, anchored at the oldest keyframe.

        Returns:
            OptimizationReport, or None while there is no map.
        """
        if self.state is not TrackingState.INITIALIZED:
            return None
        keyframe_ids = sorted(self.map.keyframes)
        map_point_ids = sorted(self.map.map_points)
        self.last_report = self.bundle_adjustment.optimize(self.map, keyframe_ids, map_point_ids)
        return self.last_report

    def is_initialized(self):
        return self.state is TrackingState.INITIALIZED
