"""
A small optimization graph and Levenberg-Marquardt solver for bundle
adjustment.

Vertices are a tagged variant over two kinds: cameras (6 Lie algebra
parameters, see `monoslam.backend.lie`) and points (3D position). There is
one edge kind, the reprojection of a point vertex through a camera vertex.
The API follows g2o's SparseOptimizer: add vertices and edges, then call
`optimize(iterations)`, which indexes the free vertices itself.
"""

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from monoslam.backend.lie import exp_map, log_map, skew

logger = logging.getLogger(__name__)

MIN_DIAGONAL = 1e-9
MAX_REJECTED_STEPS = 10


class VertexKind(Enum):
    CAMERA = "camera"
    POINT = "point"


DIMENSION = {
    VertexKind.CAMERA: 6,
    VertexKind.POINT: 3,
}


@dataclass(eq=False)
class Vertex:
    id: int
    kind: VertexKind
    params: np.ndarray
    fixed: bool = False
    edges: List["Edge"] = field(default_factory=list, repr=False)
    hessian_index: int = -1   # offset into the free parameter vector, -1 when fixed

    @property
    def dim(self):
        return DIMENSION[self.kind]

    def is_free(self):
        return not self.fixed

    def oplus(self, delta):
        """
        Apply an increment. Cameras are updated on the left, exp(delta) * T,
        points additively.
        """
        if self.kind is VertexKind.CAMERA:
            self.params = log_map(exp_map(delta) @ exp_map(self.params))
        else:
            self.params = self.params + delta


def camera_vertex(id, pose, fixed=False):
    """Camera vertex initialised from a 4x4 world-to-camera pose."""
    return Vertex(id, VertexKind.CAMERA, log_map(pose), fixed=fixed)


def point_vertex(id, position, fixed=False):
    """Point vertex initialised from a 3D world position."""
    return Vertex(id, VertexKind.POINT, np.array(position, dtype=np.float64).reshape(3), fixed=fixed)


def project(camera_params, point, intrinsics):
    """
    Project a world point through a camera parameter vector.

    Args:
        camera_params: (6,) Lie algebra pose, world to camera.
        point: (3,) world position.
        intrinsics: (8,) fx, fy, cx, cy, k1, k2, p1, p2. Distortion is ignored.

    Returns:
        Tuple of (pixel (2,), point in camera frame (3,), rotation (3x3)).
    """
    pose = exp_map(camera_params)
    R = pose[:3, :3]
    pc = R @ point + pose[:3, 3]
    fx, fy, cx, cy = intrinsics[:4]
    uv = np.array([fx * pc[0] / pc[2] + cx, fy * pc[1] / pc[2] + cy])
    return uv, pc, R


class Edge:
    """
    Reprojection constraint between one camera vertex and one point vertex.

    The residual is measurement - projection, weighted by the information
    matrix.
    """
    def __init__(self, id, camera, point, measurement, intrinsics, information=None):
        if camera.kind is not VertexKind.CAMERA or point.kind is not VertexKind.POINT:
            raise ValueError(
                f"Edge {id} needs a camera and a point vertex, got {camera.kind} and {point.kind}"
            )
        self.id = id
        self.camera = camera
        self.point = point
        self.measurement = np.array(measurement, dtype=np.float64).reshape(2)
        self.intrinsics = np.array(intrinsics, dtype=np.float64).reshape(-1)
        self.information = np.eye(2) if information is None else np.array(information, dtype=np.float64)

    @property
    def vertices(self):
        return (self.camera, self.point)

    def residual(self):
        uv, _, _ = project(self.camera.params, self.point.params, self.intrinsics)
        return self.measurement - uv

    def chi2(self):
        e = self.residual()
        return float(e @ self.information @ e)

    def jacobian(self, vertex):
        """
        Jacobian of the residual with respect to one of the edge's vertices.

        Returns:
            Array of shape (2, vertex.dim).
        """
        if vertex.kind is VertexKind.POINT:
            return self._point_jacobian()
        return self._camera_jacobian()

    def _projection_jacobian(self, pc):
        fx, fy = self.intrinsics[:2]
        inv_z = 1.0 / pc[2]
        return np.array([
            [fx * inv_z, 0.0, -fx * pc[0] * inv_z * inv_z],
            [0.0, fy * inv_z, -fy * pc[1] * inv_z * inv_z],
        ])

    def _point_jacobian(self):
        _, pc, R = project(self.camera.params, self.point.params, self.intrinsics)
        return -self._projection_jacobian(pc) @ R

    def _camera_jacobian(self):
        # left perturbation: d(pc)/d(u, omega) = [I | -[pc]x]
        _, pc, _ = project(self.camera.params, self.point.params, self.intrinsics)
        return -self._projection_jacobian(pc) @ np.hstack([np.eye(3), -skew(pc)])


@dataclass
class OptimizationReport:
    iterations: int
    initial_chi2: float
    final_chi2: float
    converged: bool


class SparseOptimizer:
    """
    Levenberg-Marquardt over the free vertices of a graph.

    Accepted steps never increase the total chi2.
    """
    def __init__(self, initial_lambda=1e-3, tolerance=1e-10):
        """
        Args:
            initial_lambda: Starting damping factor.
            tolerance: Stop when the relative chi2 decrease or the step norm
                drops below this.
        """
        self.initial_lambda = initial_lambda
        self.tolerance = tolerance
        self._vertices: Dict[int, Vertex] = {}
        self._edges: List[Edge] = []
        self._free: List[Vertex] = []
        self._n_params = 0

    def clear(self):
        self._vertices.clear()
        self._edges.clear()
        self._free = []
        self._n_params = 0

    def add_vertex(self, vertex):
        if vertex.id in self._vertices:
            raise ValueError(f"Vertex {vertex.id} already in graph")
        self._vertices[vertex.id] = vertex
        return vertex

    def add_edge(self, edge):
        for v in edge.vertices:
            if self._vertices.get(v.id) is not v:
                raise ValueError(f"Edge {edge.id} references vertex {v.id} not in graph")
            v.edges.append(edge)
        self._edges.append(edge)
        return edge

    def vertex(self, id) -> Optional[Vertex]:
        return self._vertices.get(id)

    @property
    def vertices(self):
        return list(self._vertices.values())

    @property
    def edges(self):
        return list(self._edges)

    @property
    def num_edges(self):
        return len(self._edges)

    def initialize_optimization(self):
        """
        Assign hessian indices to the free vertices.

        Returns:
            Number of free parameters.
        """
        offset = 0
        self._free = []
        for vertex in self._vertices.values():
            if vertex.fixed:
                vertex.hessian_index = -1
                continue
            vertex.hessian_index = offset
            offset += vertex.dim
            self._free.append(vertex)
        self._n_params = offset
        return offset

    def chi2(self):
        return sum(edge.chi2() for edge in self._edges)

    def _build_linear_system(self):
        """Normal equations H dx = b with H = sum J^T W J and b = -sum J^T W e."""
        rows, cols, vals = [], [], []
        b = np.zeros(self._n_params)

        for edge in self._edges:
            free = [v for v in edge.vertices if v.is_free()]
            if not free:
                continue
            e = edge.residual()
            W = edge.information
            jacobians = {v.id: edge.jacobian(v) for v in free}
            for vi in free:
                Ji = jacobians[vi.id]
                b[vi.hessian_index:vi.hessian_index + vi.dim] -= Ji.T @ W @ e
                for vj in free:
                    block = Ji.T @ W @ jacobians[vj.id]
                    r, c = np.meshgrid(
                        np.arange(vi.hessian_index, vi.hessian_index + vi.dim),
                        np.arange(vj.hessian_index, vj.hessian_index + vj.dim),
                        indexing="ij",
                    )
                    rows.append(r.ravel())
                    cols.append(c.ravel())
                    vals.append(block.ravel())

        if vals:
            H = sparse.coo_matrix(
                (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                shape=(self._n_params, self._n_params),
            ).tocsc()
        else:
            H = sparse.csc_matrix((self._n_params, self._n_params))
        return H, b

    def _solve(self, H, b, lam):
        diagonal = np.maximum(H.diagonal(), MIN_DIAGONAL)
        H_damped = (H + sparse.diags(lam * diagonal)).tocsc()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", MatrixRankWarning)
            dx = spsolve(H_damped, b)
        dx = np.atleast_1d(dx)
        if not np.all(np.isfinite(dx)):
            return None
        return dx

    def _apply(self, dx):
        for vertex in self._free:
            vertex.oplus(dx[vertex.hessian_index:vertex.hessian_index + vertex.dim])

    def _backup(self):
        return [vertex.params.copy() for vertex in self._free]

    def _restore(self, backup):
        for vertex, params in zip(self._free, backup):
            vertex.params = params

    def optimize(self, iterations=20) -> OptimizationReport:
        """
        Run up to `iterations` Levenberg-Marquardt iterations.

        Returns:
            OptimizationReport with the number of iterations run and the
            chi2 before and after.
        """
        self.initialize_optimization()

        initial_chi2 = self.chi2()
        if self._n_params == 0 or not self._edges:
            logger.debug("Nothing to optimize (%d free parameters, %d edges)",
                         self._n_params, len(self._edges))
            return OptimizationReport(0, initial_chi2, initial_chi2, True)

        chi2 = initial_chi2
        lam = self.initial_lambda
        nu = 2.0
        converged = False
        iteration = 0

        for iteration in range(1, iterations + 1):
            H, b = self._build_linear_system()
            accepted = False
            step_norm = 0.0
            new_chi2 = chi2

            for _ in range(MAX_REJECTED_STEPS):
                dx = self._solve(H, b, lam)
                if dx is None:
                    lam *= nu
                    nu *= 2.0
                    continue

                backup = self._backup()
                self._apply(dx)
                new_chi2 = self.chi2()
                if np.isfinite(new_chi2) and new_chi2 < chi2:
                    accepted = True
                    step_norm = np.linalg.norm(dx)
                    lam = max(lam / 3.0, 1e-12)
                    nu = 2.0
                    break

                self._restore(backup)
                logger.debug("Rejected step: chi2 %.6e -> %.6e, lambda %.3e", chi2, new_chi2, lam)
                lam *= nu
                nu *= 2.0

            if not accepted:
                logger.debug("No improving step found at iteration %d", iteration)
                converged = True
                break

            decrease = (chi2 - new_chi2) / max(chi2, np.finfo(float).tiny)
            logger.debug("Iteration %d: chi2 %.6e -> %.6e, lambda %.3e", iteration, chi2, new_chi2, lam)
            chi2 = new_chi2
            if decrease < self.tolerance or step_norm < self.tolerance:
                converged = True
                break

        return OptimizationReport(iteration, initial_chi2, chi2, converged)
