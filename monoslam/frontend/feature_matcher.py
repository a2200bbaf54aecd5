import logging
from typing import NamedTuple

import cv2
import numpy as np

from monoslam.exceptions import MatchFailed

logger = logging.getLogger(__name__)


class TwoViewMatch(NamedTuple):
    indices1: np.ndarray   # keypoint indices into the first frame
    indices2: np.ndarray   # keypoint indices into the second frame
    essential: np.ndarray  # 3x3, x2^T E x1 = 0


class FeatureMatcher:
    def __init__(self, camera, max_distance=30.0, min_matches=8,
                 fundamental_threshold=1.0, fundamental_confidence=0.99,
                 essential_threshold=1.0, essential_confidence=0.999):
        """
        Brute-force descriptor matching followed by RANSAC geometry fitting.

        :param camera: CameraModel shared by both frames.
        :param max_distance: Hamming distance cutoff for putative matches.
        :param min_matches: Minimum matches required at every filtering stage.
        :param fundamental_threshold: RANSAC pixel threshold for the fundamental matrix.
        :param fundamental_confidence: RANSAC confidence for the fundamental matrix.
        :param essential_threshold: RANSAC pixel threshold for the essential matrix.
        :param essential_confidence: RANSAC confidence for the essential matrix.
        """
        self.camera = camera
        self.max_distance = max_distance
        self.min_matches = min_matches
        self.fundamental_threshold = fundamental_threshold
        self.fundamental_confidence = fundamental_confidence
        self.essential_threshold = essential_threshold
        self.essential_confidence = essential_confidence
        self.bf = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)

    @classmethod
    def from_config(cls, camera, config):
        return cls(camera,
                   max_distance=config.max_descriptor_distance,
                   min_matches=config.min_matches,
                   fundamental_threshold=config.fundamental_ransac_threshold,
                   fundamental_confidence=config.fundamental_ransac_confidence,
                   essential_threshold=config.essential_ransac_threshold,
                   essential_confidence=config.essential_ransac_confidence)

    def match(self, first, second) -> TwoViewMatch:
        """
        Match two frames and fit the essential matrix between them.

        :param first: The reference Frame.
        :param second: The current Frame.
        :return: TwoViewMatch holding the surviving correspondences and E.
        :raises MatchFailed: when any stage leaves too few correspondences.
        """
        if len(first) == 0 or len(second) == 0:
            raise MatchFailed("A frame has no keypoints")

        try:
            matches = self.bf.match(first.descriptors, second.descriptors)
        except cv2.error as e:
            raise MatchFailed(f"Descriptor matching failed: {e}") from e
        matches = [m for m in matches if m.distance < self.max_distance]
        self._require(len(matches), "descriptor matches")

        idx1 = np.array([m.queryIdx for m in matches], dtype=np.int64)
        idx2 = np.array([m.trainIdx for m in matches], dtype=np.int64)

        try:
            idx1, idx2 = self._filter_fundamental(first, second, idx1, idx2)
            idx1, idx2, E = self._fit_essential(first, second, idx1, idx2)
        except cv2.error as e:
            raise MatchFailed(f"Geometry fitting failed: {e}") from e

        logger.debug("Matched %d correspondences", len(idx1))
        return TwoViewMatch(idx1, idx2, E)

    def _require(self, count, stage):
        if count < self.min_matches:
            raise MatchFailed(f"Only {count} {stage}, need {self.min_matches}")

    def _filter_fundamental(self, first, second, idx1, idx2):
        pts1 = first.keypoints[idx1]
        pts2 = second.keypoints[idx2]
        F, mask = cv2.findFundamentalMat(pts1, pts2, cv2.FM_RANSAC,
                                         self.fundamental_threshold, self.fundamental_confidence)
        if F is None or mask is None:
            raise MatchFailed("Fundamental matrix estimation failed")
        keep = mask.ravel().astype(bool)
        self._require(int(keep.sum()), "fundamental inliers")
        return idx1[keep], idx2[keep]

    def _fit_essential(self, first, second, idx1, idx2):
        pts1 = first.keypoints[idx1]
        pts2 = second.keypoints[idx2]
        E, mask = cv2.findEssentialMat(pts1, pts2, self.camera.K, method=cv2.RANSAC,
                                       prob=self.essential_confidence,
                                       threshold=self.essential_threshold)
        if E is None or mask is None or E.shape[0] < 3:
            raise MatchFailed("Essential matrix estimation failed")
        # the five-point solver may stack several candidate solutions
        E = E[:3, :3]
        keep = mask.ravel().astype(bool)
        self._require(int(keep.sum()), "essential inliers")
        return idx1[keep], idx2[keep], E
