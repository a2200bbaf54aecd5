import numpy as np


class Frame:
    """
    A single incoming camera frame, reduced to keypoints and descriptors.

    Frames are transient: the initializer either promotes one into a KeyFrame
    or drops it.
    """
    def __init__(self, timestamp, image, keypoints, descriptors, pose=None):
        """
        Args:
            timestamp: Capture time in seconds.
            image: Pixel data; held by reference, never copied or read here.
            keypoints: (N, 2) pixel coordinates.
            descriptors: (N, D) descriptors aligned with keypoints by row.
            pose: 4x4 world-to-camera transform (identity if not given).
        """
        self.timestamp = timestamp
        self.image = image
        self.keypoints = np.asarray(keypoints, dtype=np.float64).reshape(-1, 2)
        self.descriptors = np.asarray(descriptors)
        if len(self.descriptors) != len(self.keypoints):
            raise ValueError(
                f"Got {len(self.keypoints)} keypoints but {len(self.descriptors)} descriptors"
            )
        self.pose = np.eye(4) if pose is None else np.array(pose, dtype=np.float64)

    def __len__(self):
        return len(self.keypoints)

    def parallax(self, other, indices_self, indices_other):
        """
        Mean squared pixel displacement between matched keypoints.

        Args:
            other: The other Frame.
            indices_self: Keypoint indices into this frame.
            indices_other: Matching keypoint indices into `other`.

        Returns:
            Mean of squared displacements, 0.0 for no matches.
        """
        if len(indices_self) == 0:
            return 0.0
        diff = self.keypoints[indices_self] - other.keypoints[indices_other]
        return float(np.mean(np.sum(diff ** 2, axis=1)))
