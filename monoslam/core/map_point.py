import numpy as np
from typing import Iterable, List


class MapPointReference:
    """
    One observation of a MapPoint from a keyframe.

    The keyframe is referenced by id only and resolved through the Map.
    """
    __slots__ = ("id", "keypoint", "descriptor")

    def __init__(self, id, keypoint, descriptor):
        """
        Args:
            id: Id of the observing KeyFrame.
            keypoint: Observed pixel coordinate (2,).
            descriptor: Descriptor of the keypoint in that keyframe.
        """
        self.id = id
        self.keypoint = np.array(keypoint, dtype=np.float64).reshape(2)
        self.descriptor = np.array(descriptor)

    @classmethod
    def from_keyframe(cls, keyframe, keypoint_idx):
        """Reference the keypoint at `keypoint_idx` of `keyframe`."""
        return cls(keyframe.id, keyframe.keypoints[keypoint_idx], keyframe.descriptors[keypoint_idx])

    def __repr__(self):
        return f"MapPointReference(kf={self.id}, px={self.keypoint.tolist()})"


class MapPoint:
    """
    Represents a 3D map point in the world coordinate system.

    Each map point stores:
    - 3D position in world coordinates
    - A representative descriptor
    - One reference per keyframe that observes it
    """
    def __init__(self, id, position, descriptor):
        """
        Initialize a map point with its 3D position and descriptor.

        Args:
            id: Unique identifier, drawn from the map's id allocator.
            position: 3D position in world coordinates (array of shape (3,)).
            descriptor: Representative descriptor.
        """
        self.id = id
        self.position = np.array(position, dtype=np.float64).reshape(3)
        self.descriptor = np.array(descriptor)
        self.references: List[MapPointReference] = []

    def add_reference(self, reference):
        """
        Adds an observation of this map point from a keyframe.

        Args:
            reference: MapPointReference naming the observing keyframe.
        """
        self.references.append(reference)

    def add_references(self, references: Iterable[MapPointReference]):
        self.references.extend(references)

    def observed_by(self, keyframe_id):
        """Returns the reference from `keyframe_id`, or None."""
        for reference in self.references:
            if reference.id == keyframe_id:
                return reference
        return None

    def __repr__(self):
        return f"MapPoint(id={self.id}, position={self.position.round(3).tolist()}, {len(self.references)} refs)"
