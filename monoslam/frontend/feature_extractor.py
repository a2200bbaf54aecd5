import cv2
import numpy as np


class FeatureExtractor:
    def __init__(self,
                 nfeatures=1000,
                 quality_level=0.01,
                 min_distance=10.0,
                 scaleFactor=1.2,
                 nlevels=8):
        """
        Corner detector with ORB descriptors.

        Parameters:
          - nfeatures: maximum number of corners kept per image.
          - quality_level: Shi-Tomasi quality threshold relative to the best corner.
          - min_distance: minimum pixel distance between returned corners.
          - scaleFactor, nlevels: ORB pyramid settings used when describing.

        Corners come from goodFeaturesToTrack (Harris response); ORB then
        computes orientation and a 256-bit descriptor for each. Corners too
        close to the border to be described are dropped by ORB.
        """
        self.nfeatures = nfeatures
        self.quality_level = quality_level
        self.min_distance = min_distance
        self.orb = cv2.ORB_create(
            nfeatures=nfeatures,
            scaleFactor=scaleFactor,
            nlevels=nlevels,
            edgeThreshold=31,
            firstLevel=0,
            WTA_K=2,
            scoreType=cv2.ORB_HARRIS_SCORE,
            patchSize=31,
            fastThreshold=20,
        )

    @classmethod
    def from_config(cls, config):
        return cls(nfeatures=config.n_features,
                   quality_level=config.corner_quality,
                   min_distance=config.corner_min_distance)

    def extract(self, image):
        """
        Detect corners and describe them.

        Parameters:
          - image: a grayscale image.

        Returns:
          - keypoints: (N, 2) float array of pixel coordinates.
          - descriptors: (N, 32) uint8 array.
        """
        if image is None or len(image.shape) != 2:
            raise ValueError("Input image must be grayscale")

        corners = cv2.goodFeaturesToTrack(
            image,
            maxCorners=self.nfeatures,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
            blockSize=3,
            useHarrisDetector=False,
            k=0.04,
        )
        if corners is None:
            return np.zeros((0, 2)), np.zeros((0, 32), dtype=np.uint8)

        keypoints = [cv2.KeyPoint(float(x), float(y), 1.0) for x, y in corners.reshape(-1, 2)]
        keypoints, descriptors = self.orb.compute(image, keypoints)
        if descriptors is None or len(keypoints) == 0:
            return np.zeros((0, 2)), np.zeros((0, 32), dtype=np.uint8)

        points = np.array([kp.pt for kp in keypoints], dtype=np.float64)
        return points, descriptors
