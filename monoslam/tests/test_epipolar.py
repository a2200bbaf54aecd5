import numpy as np
import pytest

from monoslam.backend.lie import skew
from monoslam.core.camera import CameraModel
from monoslam.exceptions import InsufficientInliers
from monoslam.frontend.epipolar import (
    check_cheirality,
    decompose_essential,
    recover_pose,
    triangulate_point_linear,
)
from monoslam.tests.synthetic import essential_from_pose, make_camera, make_points, relative_motion, transform


def _unit_camera():
    return CameraModel(fx=1.0, fy=1.0, cx=0.0, cy=0.0)


def test_recover_pose_single_point_baseline():
    # second camera shifted by one unit along +x in the world, so t = (-1, 0, 0)
    t = np.array([-1.0, 0.0, 0.0])
    E = skew(t)
    points1 = np.array([[0.0, 0.0]])
    points2 = np.array([[-0.2, 0.0]])

    recovery = recover_pose(E, points1, points2, _unit_camera())

    assert np.allclose(recovery.pose[:3, :3], np.eye(3), atol=1e-9)
    assert np.allclose(recovery.pose[:3, 3], t, atol=1e-9)
    assert recovery.mask.tolist() == [True]
    assert np.allclose(recovery.points3d[0], [0.0, 0.0, 5.0], atol=1e-9)


def test_recover_pose_synthetic_scene():
    camera = make_camera()
    relative = relative_motion()
    points = make_points(n=40)
    pixels1 = camera.project(points)
    pixels2 = camera.project(transform(relative, points))

    recovery = recover_pose(essential_from_pose(relative), pixels1, pixels2, camera)

    assert recovery.mask.all()
    assert np.allclose(recovery.pose, relative, atol=1e-8)
    assert np.allclose(recovery.points3d, points, atol=1e-6)
    # translation comes back as a unit vector
    assert np.isclose(np.linalg.norm(recovery.pose[:3, 3]), 1.0)


def test_far_points_are_not_inliers():
    E = skew([-1.0, 0.0, 0.0])
    points_cam1 = np.array([
        [0.5, 0.2, 100.0],
        [0.5, 0.2, 200.0],
        [0.5, 0.2, 300.0],
        [0.5, 0.2, 5.0],
    ])
    points1 = points_cam1[:, :2] / points_cam1[:, 2:]
    shifted = points_cam1 + [-1.0, 0.0, 0.0]
    points2 = shifted[:, :2] / shifted[:, 2:]

    with pytest.raises(InsufficientInliers) as info:
        recover_pose(E, points1, points2, _unit_camera())

    assert info.value.inliers == 1
    assert info.value.total == 4


def test_max_depth_is_configurable():
    E = skew([-1.0, 0.0, 0.0])
    point = np.array([0.5, 0.2, 100.0])
    points1 = (point[:2] / point[2])[None]
    shifted = point + [-1.0, 0.0, 0.0]
    points2 = (shifted[:2] / shifted[2])[None]

    recovery = recover_pose(E, points1, points2, _unit_camera(), max_depth=500.0)

    assert recovery.mask.tolist() == [True]
    assert np.allclose(recovery.points3d[0], point, rtol=1e-6)


def test_empty_correspondences_raise():
    with pytest.raises(InsufficientInliers):
        recover_pose(np.eye(3), np.zeros((0, 2)), np.zeros((0, 2)), _unit_camera())


def test_mismatched_lengths_raise():
    with pytest.raises(ValueError):
        recover_pose(skew([1.0, 0.0, 0.0]), np.zeros((3, 2)), np.zeros((2, 2)), _unit_camera())


def test_decompose_essential_hypotheses():
    hypotheses = decompose_essential(essential_from_pose(relative_motion()))

    assert len(hypotheses) == 4
    for R, t in hypotheses:
        assert np.isclose(np.linalg.det(R), 1.0)
        assert np.allclose(R @ R.T, np.eye(3))
        assert np.isclose(np.linalg.norm(t), 1.0)
    (R1, t1), (R1b, t2), (R2, t1b), (R2b, t2b) = hypotheses
    assert np.allclose(R1, R1b) and np.allclose(R2, R2b)
    assert np.allclose(t1, t1b) and np.allclose(t2, -t1) and np.allclose(t2b, t2)


def test_decompose_essential_rejects_bad_shape():
    with pytest.raises(ValueError):
        decompose_essential(np.zeros((3, 4)))


def test_triangulate_point_linear_known_case():
    point = np.array([0.2, -1.0, 8.0])
    Pl = np.hstack([np.eye(3), np.zeros((3, 1))])
    Pr = np.hstack([np.eye(3), np.array([[-2.0], [0.0], [0.0]])])
    xl = point[:2] / point[2]
    right = point + [-2.0, 0.0, 0.0]
    xr = right[:2] / right[2]

    assert np.allclose(triangulate_point_linear(xl, xr, Pl, Pr), point)


def test_check_cheirality_counts_only_points_in_front():
    camera = make_camera()
    relative = relative_motion()
    points = make_points(n=10)
    pixels1 = camera.project(points)
    pixels2 = camera.project(transform(relative, points))

    count, mask, _ = check_cheirality(relative[:3, :3], relative[:3, 3], pixels1, pixels2, camera.K)
    assert count == 10 and mask.all()

    # flipping the baseline puts every point behind the cameras
    count, mask, _ = check_cheirality(relative[:3, :3], -relative[:3, 3], pixels1, pixels2, camera.K)
    assert count == 0 and not mask.any()
