"""
Map export for persistence and visualization consumers.
"""

from __future__ import annotations

from typing import Dict

import numpy as np

from monoslam.backend.lie import pose_to_quaternion


def export_map(map_instance) -> Dict[str, np.ndarray]:
    """
    Flatten a map into numpy arrays.

    Args:
        map_instance: The Map to export.

    Returns:
        Dictionary with:
        - keyframe_ids (K,), keyframe_poses (K, 4, 4), keyframe_quaternions (K, 4) as x, y, z, w
        - point_ids (P,), point_positions (P, 3)
        - obs_point_ids (O,), obs_keyframe_ids (O,), obs_uvs (O, 2): one row per map point reference
    """
    keyframes = [map_instance.keyframes[kf_id] for kf_id in sorted(map_instance.keyframes)]
    points = sorted(map_instance.points(), key=lambda mp: mp.id)

    keyframe_poses = np.array([kf.pose for kf in keyframes]).reshape(-1, 4, 4)
    keyframe_quaternions = np.array([pose_to_quaternion(pose) for pose in keyframe_poses]).reshape(-1, 4)

    obs_point_ids, obs_keyframe_ids, obs_uvs = [], [], []
    for mp in points:
        for reference in mp.references:
            obs_point_ids.append(mp.id)
            obs_keyframe_ids.append(reference.id)
            obs_uvs.append(reference.keypoint)

    return {
        "keyframe_ids": np.array([kf.id for kf in keyframes], dtype=np.int64),
        "keyframe_poses": keyframe_poses,
        "keyframe_quaternions": keyframe_quaternions,
        "point_ids": np.array([mp.id for mp in points], dtype=np.int64),
        "point_positions": np.array([mp.position for mp in points]).reshape(-1, 3),
        "obs_point_ids": np.array(obs_point_ids, dtype=np.int64),
        "obs_keyframe_ids": np.array(obs_keyframe_ids, dtype=np.int64),
        "obs_uvs": np.array(obs_uvs, dtype=np.float64).reshape(-1, 2),
    }


def save_map_npz(output_path: str, map_instance) -> None:
    """
    Serialize a map to a .npz file.

    Args:
        output_path: Path where the map will be saved (.npz file).
        map_instance: The Map to save.
    """
    np.savez(output_path, **export_map(map_instance))


__all__ = ["export_map", "save_map_npz"]
