"""Noise-free two-view scenes shared by the tests."""

import numpy as np
from scipy.spatial.transform import Rotation

from monoslam.backend.lie import skew
from monoslam.core.camera import CameraModel
from monoslam.core.frame import Frame
from monoslam.frontend.epipolar import make_pose
from monoslam.frontend.feature_matcher import TwoViewMatch


def make_camera() -> CameraModel:
    return CameraModel(fx=500.0, fy=500.0, cx=320.0, cy=240.0)


def relative_motion() -> np.ndarray:
    """First camera -> second camera, unit baseline mostly along -x."""
    R = Rotation.from_rotvec([0.0, 0.05, 0.0]).as_matrix()
    t = np.array([-1.0, 0.0, 0.1])
    return make_pose(R, t / np.linalg.norm(t))


def make_points(n=30, depth=(4.0, 10.0), seed=0) -> np.ndarray:
    """Random points in front of a camera, in that camera's frame."""
    rng = np.random.default_rng(seed)
    return np.column_stack([
        rng.uniform(-2.0, 2.0, n),
        rng.uniform(-1.5, 1.5, n),
        rng.uniform(depth[0], depth[1], n),
    ])


def transform(pose, points):
    return points @ pose[:3, :3].T + pose[:3, 3]


def essential_from_pose(pose) -> np.ndarray:
    return skew(pose[:3, 3]) @ pose[:3, :3]


def make_frame_pair(camera, points_cam1, first_pose=None, relative=None, seed=0):
    """
    Two frames observing the same points with identical descriptors.

    Returns:
        (first frame, second frame, second camera's true pose, world points)
    """
    first_pose = np.eye(4) if first_pose is None else first_pose
    relative = relative_motion() if relative is None else relative
    second_pose = relative @ first_pose
    points_world = transform(np.linalg.inv(first_pose), points_cam1)

    rng = np.random.default_rng(seed)
    descriptors = rng.integers(0, 256, (len(points_cam1), 32), dtype=np.uint8)
    first = Frame(0.0, None, camera.project(transform(first_pose, points_world)), descriptors,
                  pose=first_pose)
    second = Frame(0.1, None, camera.project(transform(second_pose, points_world)), descriptors.copy())
    return first, second, second_pose, points_world


class FakeMatcher:
    """Pairs keypoints by index and reports a fixed essential matrix."""
    def __init__(self, essential, error=None):
        self.essential = essential
        self.error = error
        self.calls = []

    def match(self, first, second):
        self.calls.append((first, second))
        if self.error is not None:
            error, self.error = self.error, None
            raise error
        indices = np.arange(len(first))
        return TwoViewMatch(indices, indices.copy(), self.essential)
