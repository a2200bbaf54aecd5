import logging
from typing import Sequence

import numpy as np

from monoslam.backend.graph import Edge, OptimizationReport, SparseOptimizer, camera_vertex, point_vertex
from monoslam.backend.lie import exp_map

logger = logging.getLogger(__name__)


class BundleAdjustment:
    def __init__(self, iterations=20, initial_lambda=1e-3, tolerance=1e-10):
        """
        Joint refinement of keyframe poses and map point positions.

        Parameters:
          - iterations: Maximum number of Levenberg-Marquardt iterations.
          - initial_lambda: Starting damping factor.
          - tolerance: Convergence threshold on relative chi2 decrease and step norm.
        """
        self.iterations = iterations
        self.optimizer = SparseOptimizer(initial_lambda=initial_lambda, tolerance=tolerance)

    @classmethod
    def from_config(cls, config):
        return cls(iterations=config.ba_iterations,
                   initial_lambda=config.ba_initial_lambda,
                   tolerance=config.ba_tolerance)

    def optimize(self, map_instance, keyframe_ids: Sequence[int], map_point_ids: Sequence[int]) -> OptimizationReport:
        """
        Optimize the given keyframes and map points in place.

        The first keyframe in `keyframe_ids` is held fixed to anchor the
        reconstruction. Every reference of an optimized map point to an
        optimized keyframe becomes one reprojection edge.

        Args:
            map_instance: The Map holding the keyframes and map points.
            keyframe_ids: Keyframes to optimize, anchor first.
            map_point_ids: Map points to optimize.

        Returns:
            OptimizationReport.

        Raises:
            NotFound: if an id is not in the map. Nothing is modified then.
        """
        self.optimizer.clear()

        keyframe_ids = list(dict.fromkeys(keyframe_ids))
        map_point_ids = list(dict.fromkeys(map_point_ids))
        keyframes = [map_instance.keyframe(kf_id) for kf_id in keyframe_ids]
        map_points = [map_instance.map_point(mp_id) for mp_id in map_point_ids]

        optimized_keyframes = set(keyframe_ids)

        # --- Add Keyframes (Poses) ---
        for idx, keyframe in enumerate(keyframes):
            self.add_pose(keyframe.id, keyframe.pose, fixed=(idx == 0))

        # --- Add 3D Map Points and Observations (Edges) ---
        for map_point in map_points:
            self.add_point(map_point.id, map_point.position)
            for reference in map_point.references:
                if reference.id not in optimized_keyframes:
                    continue
                keyframe = map_instance.keyframe(reference.id)
                self.add_edge(map_point.id, keyframe.id, reference.keypoint,
                              keyframe.camera.intrinsics_vector())

        # --- Optimize ---
        report = self.optimizer.optimize(self.iterations)
        logger.info(
            "Bundle adjustment over %d keyframes, %d points, %d edges: %d iterations, chi2 %.6e -> %.6e",
            len(keyframes), len(map_points), self.optimizer.num_edges,
            report.iterations, report.initial_chi2, report.final_chi2,
        )

        # --- Update the Map ---
        for keyframe in keyframes[1:]:
            keyframe.pose = self.get_pose(keyframe.id)
        for map_point in map_points:
            map_point.position = self.get_point(map_point.id)

        self.optimizer.clear()
        return report

    def add_pose(self, pose_id, pose, fixed=False):
        """ Adds a camera pose to the optimizer. """
        return self.optimizer.add_vertex(camera_vertex(pose_id, pose, fixed=fixed))

    def add_point(self, point_id, point, fixed=False):
        """ Adds a 3D point to the optimizer. """
        return self.optimizer.add_vertex(point_vertex(point_id, point, fixed=fixed))

    def add_edge(self, point_id, pose_id, measurement, intrinsics, information=None):
        """ Adds an edge (observation constraint) between keyframe and 3D point. """
        edge = Edge(
            self.optimizer.num_edges,
            self.optimizer.vertex(pose_id),
            self.optimizer.vertex(point_id),
            measurement,
            intrinsics,
            information,
        )
        return self.optimizer.add_edge(edge)

    def get_pose(self, pose_id):
        """ Retrieves the optimized pose of a keyframe as a 4x4 matrix. """
        return exp_map(self.optimizer.vertex(pose_id).params)

    def get_point(self, point_id):
        """ Retrieves the optimized 3D point. """
        return np.array(self.optimizer.vertex(point_id).params, dtype=np.float64)
