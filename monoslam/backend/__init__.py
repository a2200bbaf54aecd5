# monoslam/backend/__init__.py

from .lie import exp_map, log_map
from .graph import Edge, OptimizationReport, SparseOptimizer, Vertex, VertexKind
from .bundle_adjustment import BundleAdjustment


__all__ = [
    'exp_map',
    'log_map',
    'Edge',
    'OptimizationReport',
    'SparseOptimizer',
    'Vertex',
    'VertexKind',
    'BundleAdjustment',
]
