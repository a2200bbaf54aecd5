import logging

import numpy as np

from monoslam.core.keyframe import KeyFrame
from monoslam.core.map import IdAllocator, Map
from monoslam.core.map_point import MapPoint, MapPointReference
from monoslam.exceptions import InsufficientInliers, MatchFailed
from monoslam.frontend.epipolar import MAX_DEPTH, MIN_INLIER_RATIO, recover_pose

logger = logging.getLogger(__name__)


class MapInitializer:
    def __init__(self, camera, matcher, allocator=None,
                 max_depth=MAX_DEPTH, min_inlier_ratio=MIN_INLIER_RATIO):
        """
        Two-frame map bootstrap.

        params:
            - camera: CameraModel of the sensor.
            - matcher: An instance that provides a .match(first, second) method
              returning a TwoViewMatch, or raising MatchFailed.
            - allocator: IdAllocator for the keyframes and map points created.
            - max_depth: Depth bound for the cheirality test.
            - min_inlier_ratio: Minimum fraction of correspondences the pose must explain.
        """
        self.camera = camera
        self.matcher = matcher
        self.allocator = allocator if allocator is not None else IdAllocator()
        self.max_depth = max_depth
        self.min_inlier_ratio = min_inlier_ratio

        self.first_frame = None
        self.map = Map(self.allocator)
        self.attempts = 0
        self._done = False

    def done(self):
        return self._done

    def run(self, frame):
        """
        Feed one frame to the initializer.

        The first frame is kept as reference. Every later frame is matched
        against that same reference until a pair succeeds; a failed pair
        never replaces the reference.

        Returns:
            True once the map has been initialized.
        """
        if self._done:
            return True

        if self.first_frame is None:
            self.first_frame = frame
            logger.info("Stored reference frame (t=%s, %d keypoints)", frame.timestamp, len(frame))
            return False

        self.attempts += 1
        try:
            self.map = self.initialize_map(self.first_frame, frame)
        except MatchFailed as e:
            logger.warning("Initialization attempt %d: match failed: %s", self.attempts, e)
            return False
        except InsufficientInliers as e:
            logger.warning("Initialization attempt %d: %s", self.attempts, e)
            return False

        self._done = True
        logger.info("Map initialized with %d keyframes and %d map points",
                    self.map.num_keyframes, self.map.num_map_points)
        return True

    def initialize_map(self, first, second):
        """
        Build a fresh map from a reference frame and the current frame.

        Returns:
            The new Map holding two keyframes and the triangulated map points.

        Raises:
            MatchFailed: if the matcher cannot relate the two frames.
            InsufficientInliers: if no pose hypothesis explains enough matches.
        """
        # -----------------------------
        # Step 1: Match and fit E (collaborator)
        # -----------------------------
        match = self.matcher.match(first, second)
        pts1 = first.keypoints[match.indices1]
        pts2 = second.keypoints[match.indices2]

        # -----------------------------
        # Step 2: Recover motion and triangulate
        # -----------------------------
        recovery = recover_pose(match.essential, pts1, pts2, self.camera,
                                max_depth=self.max_depth,
                                min_inlier_ratio=self.min_inlier_ratio)

        keep = recovery.mask
        idx1 = match.indices1[keep]
        idx2 = match.indices2[keep]
        points_cam1 = recovery.points3d[keep]

        # The first camera defines where the triangulated points live
        world_from_cam1 = np.linalg.inv(first.pose)
        points_world = points_cam1 @ world_from_cam1[:3, :3].T + world_from_cam1[:3, 3]

        # -----------------------------
        # Step 3: Build keyframes and map points
        # -----------------------------
        map_instance = Map(self.allocator)
        keyframe1 = KeyFrame.from_frame(first, self.camera, map_instance.next_id())
        keyframe2 = KeyFrame.from_frame(second, self.camera, map_instance.next_id())
        keyframe2.pose = recovery.pose @ first.pose

        for i1, i2, position in zip(idx1, idx2, points_world):
            map_point = MapPoint(map_instance.next_id(), position, second.descriptors[i2])
            keyframe1.add_observation(map_point.id)
            keyframe2.add_observation(map_point.id)
            map_point.add_reference(MapPointReference.from_keyframe(keyframe1, i1))
            map_point.add_reference(MapPointReference.from_keyframe(keyframe2, i2))
            map_instance.insert_map_point(map_point)

        keyframe1.add_connection(keyframe2.id)
        keyframe2.add_connection(keyframe1.id)
        map_instance.insert_keyframe(keyframe1)
        map_instance.insert_keyframe(keyframe2)

        return map_instance
