"""
se(3) exponential and logarithm maps.

A rigid transform is parameterized by a 6-vector (u, omega): the first three
entries are the translational part, the last three the rotation vector.
The closed forms follow J.L. Blanco, "A tutorial on SE(3) transformation
parameterizations and on-manifold optimization".
"""

import numpy as np
from scipy.spatial.transform import Rotation

SMALL_ANGLE = 1e-6


def skew(v):
    """Cross-product matrix of a 3-vector."""
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ], dtype=np.float64)


def pose_to_quaternion(pose):
    """
    Rotation part of a 4x4 pose as a unit quaternion (x, y, z, w), w >= 0.
    """
    q = Rotation.from_matrix(pose[:3, :3]).as_quat()
    if q[3] < 0:
        q = -q
    return q


def quaternion_to_pose(q, t):
    """
    Build a 4x4 pose from a quaternion (x, y, z, w) and a translation.
    """
    pose = np.eye(4)
    pose[:3, :3] = Rotation.from_quat(q).as_matrix()
    pose[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return pose


def exp_map(xi):
    """
    Convert a 6-vector Lie algebra element to a 4x4 rigid transform.

    Args:
        xi: (u, omega), shape (6,).

    Returns:
        4x4 pose.
    """
    xi = np.asarray(xi, dtype=np.float64).reshape(6)
    u = xi[:3]
    omega = xi[3:]
    theta = np.linalg.norm(omega)
    Omega = skew(omega)

    if theta > SMALL_ANGLE:
        half_theta = 0.5 * theta
        q = np.append(omega * np.sin(half_theta) / theta, np.cos(half_theta))
        V = (np.eye(3)
             + Omega * (1.0 - np.cos(theta)) / theta ** 2
             + Omega @ Omega * (theta - np.sin(theta)) / theta ** 3)
    else:
        # first-order series; matches log_map's small-angle branch
        q = np.append(0.5 * omega, 1.0)
        q /= np.linalg.norm(q)
        V = np.eye(3) + 0.5 * Omega

    return quaternion_to_pose(q, V @ u)


def log_map(pose):
    """
    Convert a 4x4 rigid transform to its 6-vector Lie algebra element.

    Args:
        pose: 4x4 pose.

    Returns:
        (u, omega), shape (6,).
    """
    pose = np.asarray(pose, dtype=np.float64)
    t = pose[:3, 3]
    q = pose_to_quaternion(pose)
    q_vec = q[:3]
    theta = 2.0 * np.arctan2(np.linalg.norm(q_vec), q[3])

    if theta > SMALL_ANGLE:
        half_theta = 0.5 * theta
        omega = q_vec * theta / np.sin(half_theta)
        Omega = skew(omega)
        V_inv = (np.eye(3)
                 - 0.5 * Omega
                 + Omega @ Omega * (1.0 - half_theta * np.cos(half_theta) / np.sin(half_theta)) / theta ** 2)
    else:
        omega = 2.0 * q_vec
        V_inv = np.eye(3) - 0.5 * skew(omega)

    return np.concatenate([V_inv @ t, omega])
