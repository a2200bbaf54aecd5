"""
Relative pose recovery from an essential matrix.

The essential matrix follows the convention x2^T E x1 = 0, i.e. it encodes
the transform taking points from the first camera frame into the second:
X2 = R X1 + t. The recovered translation is a unit vector; the true
baseline length cannot be observed from two views.
"""

import logging
from typing import List, NamedTuple, Tuple

import numpy as np

from monoslam.exceptions import InsufficientInliers

logger = logging.getLogger(__name__)

MAX_DEPTH = 50.0
MIN_INLIER_RATIO = 0.5

W = np.array([
    [0.0, -1.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 0.0, 1.0],
])


class PoseRecovery(NamedTuple):
    pose: np.ndarray        # 4x4, first camera -> second camera
    mask: np.ndarray        # (N,) bool, cheirality inliers
    points3d: np.ndarray    # (N, 3), first camera frame; valid where mask is True


def make_pose(R, t):
    """Assemble a 4x4 rigid transform from R (3x3) and t (3,)."""
    pose = np.eye(4)
    pose[:3, :3] = R
    pose[:3, 3] = np.asarray(t).reshape(3)
    return pose


def decompose_essential(E) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    Split an essential matrix into its four (R, t) hypotheses.

    Args:
        E: Essential matrix (3x3).

    Returns:
        [(R1, t1), (R1, t2), (R2, t1), (R2, t2)] in that order.
    """
    E = np.asarray(E, dtype=np.float64)
    if E.shape != (3, 3):
        raise ValueError(f"Essential matrix must be 3x3, got {E.shape}")

    U, _, Vt = np.linalg.svd(E)
    # Keep both factors proper rotations
    if np.linalg.det(U) < 0:
        U = -U
    if np.linalg.det(Vt) < 0:
        Vt = -Vt

    R1 = U @ W @ Vt
    R2 = U @ W.T @ Vt
    t1 = U[:, 2].copy()
    t2 = -t1
    return [(R1, t1), (R1, t2), (R2, t1), (R2, t2)]


def triangulate_point_linear(xl, xr, Pl, Pr):
    """
    Linear (DLT) triangulation of one correspondence.

    Args:
        xl: Point in the left image (2,), in the coordinates Pl projects to.
        xr: Point in the right image (2,), in the coordinates Pr projects to.
        Pl: Left projection matrix (3x4).
        Pr: Right projection matrix (3x4).

    Returns:
        The 3D point (3,). Non-finite if the right singular vector has a zero
        homogeneous coordinate (point at infinity).
    """
    A = np.array([
        xl[0] * Pl[2] - Pl[0],
        xl[1] * Pl[2] - Pl[1],
        xr[0] * Pr[2] - Pr[0],
        xr[1] * Pr[2] - Pr[1],
    ])
    _, _, Vt = np.linalg.svd(A)
    X = Vt[-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        return X[:3] / X[3]


def check_cheirality(R, t, points1, points2, K, max_depth=MAX_DEPTH):
    """
    Triangulate every correspondence under one pose hypothesis and test it.

    A correspondence passes when its point lies in front of both cameras and
    closer than `max_depth` in both.

    Args:
        R: Rotation (3x3), first -> second camera.
        t: Translation (3,), first -> second camera.
        points1: Pixels in the first image (N, 2).
        points2: Pixels in the second image (N, 2).
        K: Intrinsic matrix (3x3).
        max_depth: Depth bound.

    Returns:
        Tuple of (inlier count, mask (N,), points (N, 3) in the first camera frame).
    """
    P1 = K @ np.hstack([np.eye(3), np.zeros((3, 1))])
    P2 = K @ np.hstack([R, np.reshape(t, (3, 1))])

    points3d = np.array([
        triangulate_point_linear(x1, x2, P1, P2) for x1, x2 in zip(points1, points2)
    ]).reshape(-1, 3)

    depth1 = points3d[:, 2]
    depth2 = (points3d @ R.T + np.reshape(t, 3))[:, 2]
    with np.errstate(invalid="ignore"):
        mask = (depth1 > 0) & (depth2 > 0) & (depth1 < max_depth) & (depth2 < max_depth)

    return int(mask.sum()), mask, points3d


def recover_pose(E, points1, points2, camera, max_depth=MAX_DEPTH,
                 min_inlier_ratio=MIN_INLIER_RATIO) -> PoseRecovery:
    """
    Pick the essential-matrix decomposition that places the most points in
    front of both cameras.

    Args:
        E: Essential matrix (3x3) with x2^T E x1 = 0.
        points1: Pixels in the first image (N, 2).
        points2: Pixels in the second image (N, 2).
        camera: CameraModel shared by both views.
        max_depth: Depth bound for the cheirality test.
        min_inlier_ratio: Minimum inlier fraction for the winning hypothesis.

    Returns:
        PoseRecovery(pose, mask, points3d).

    Raises:
        InsufficientInliers: if the best hypothesis falls below `min_inlier_ratio`.
    """
    points1 = np.asarray(points1, dtype=np.float64).reshape(-1, 2)
    points2 = np.asarray(points2, dtype=np.float64).reshape(-1, 2)
    if len(points1) != len(points2):
        raise ValueError(f"Got {len(points1)} and {len(points2)} points; correspondences must pair up")

    total = len(points1)
    if total == 0:
        raise InsufficientInliers(0, 0, min_inlier_ratio)

    K = camera.K
    best = None
    for idx, (R, t) in enumerate(decompose_essential(E)):
        count, mask, points3d = check_cheirality(R, t, points1, points2, K, max_depth)
        logger.debug("Hypothesis %d: %d/%d inliers", idx, count, total)
        # Strict comparison: ties go to the earlier hypothesis
        if best is None or count > best[0]:
            best = (count, R, t, mask, points3d)

    count, R, t, mask, points3d = best
    if count / total < min_inlier_ratio:
        raise InsufficientInliers(count, total, min_inlier_ratio)

    logger.info("Recovered relative pose with %d/%d cheirality inliers", count, total)
    return PoseRecovery(make_pose(R, t), mask, points3d)
