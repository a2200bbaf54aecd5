import numpy as np
from typing import Iterable, List


class KeyFrame:
    """
    A keyframe stores:
    - Camera pose
    - Camera model snapshot
    - Keypoints and descriptors (owned copies)
    - Observations: ids of the MapPoints seen from this keyframe
    - Connections: ids of other keyframes in the covisibility graph
    """
    def __init__(self, id, timestamp, keypoints, descriptors, camera, pose=None):
        """
        Initialize a keyframe.

        Args:
            id: Unique identifier, drawn from the map's id allocator.
            timestamp: Capture time in seconds.
            keypoints: (N, 2) pixel coordinates.
            descriptors: (N, D) descriptors aligned with keypoints.
            camera: CameraModel used to capture this keyframe.
            pose: 4x4 transformation matrix (world to camera).
        """
        self.id = id
        self.timestamp = timestamp
        self.keypoints = np.array(keypoints, dtype=np.float64).reshape(-1, 2)
        self.descriptors = np.array(descriptors)
        self.camera = camera
        self.pose = np.eye(4) if pose is None else np.array(pose, dtype=np.float64)

        # Map point ids, in the order they were observed
        self.observations: List[int] = []

        # Covisible keyframe ids
        self.connections: List[int] = []

    @classmethod
    def from_frame(cls, frame, camera, id):
        """
        Promote a transient Frame into a KeyFrame.

        Args:
            frame: The source Frame.
            camera: CameraModel snapshot.
            id: Identity allocated by the map.
        """
        return cls(id, frame.timestamp, frame.keypoints, frame.descriptors, camera, frame.pose)

    @property
    def rotation(self):
        return self.pose[:3, :3]

    @property
    def translation(self):
        return self.pose[:3, 3]

    def camera_center(self):
        """
        Returns the camera center C in world coordinates.

        Returns:
            3D position vector of camera center
        """
        R = self.rotation
        t = self.translation
        return -R.T @ t  # Camera center C = -R^T * t

    def add_observation(self, map_point_id):
        """
        Records that this keyframe observes a MapPoint.

        Args:
            map_point_id: The id of the observed MapPoint.
        """
        self.observations.append(map_point_id)

    def add_observations(self, map_point_ids: Iterable[int]):
        self.observations.extend(map_point_ids)

    def has_observation(self, map_point_id):
        return map_point_id in self.observations

    def add_connection(self, keyframe_id):
        """
        Adds a covisibility link to another keyframe.

        Args:
            keyframe_id: The id of the connected KeyFrame.
        """
        self.connections.append(keyframe_id)

    def add_connections(self, keyframe_ids: Iterable[int]):
        self.connections.extend(keyframe_ids)

    def __repr__(self):
        return (f"KeyFrame(id={self.id}, t={self.timestamp}, "
                f"{len(self.keypoints)} keypoints, {len(self.observations)} observations)")
